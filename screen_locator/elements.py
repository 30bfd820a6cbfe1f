"""
Stored element records and retrieval results.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from PIL import Image

from screen_locator.common.text_utils import is_blank


@dataclass(frozen=True)
class StoredElement:
    """A previously seen UI element persisted in the similarity store."""

    name: str
    own_description: str
    anchor_description: str = ""
    page_summary: str = ""
    reference_image: Optional[Image.Image] = field(default=None, compare=False, repr=False)
    requires_zoom: bool = False
    data_dependent_attributes: Tuple[str, ...] = ()
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_data_dependent(self) -> bool:
        return any(not is_blank(a) for a in self.data_dependent_attributes)

    @property
    def context_text(self) -> str:
        """Text compared against a page description for page relevance."""
        return f"{self.own_description} {self.anchor_description}".strip()

    def full_description(self, element_data: Optional[str] = None) -> str:
        parts = [f"{self.name}.", self.own_description, self.anchor_description]
        text = '"' + " ".join(p.strip() for p in parts if not is_blank(p)) + '"'
        if self.is_data_dependent and not is_blank(element_data):
            attrs = ", ".join(a for a in self.data_dependent_attributes if not is_blank(a))
            text += (
                "\nThis element is data-dependent."
                f"\nThe element attributes which depend on specific data: [{attrs}]."
                f'\nAvailable specific data for this element: "{element_data}"'
            )
        return text

    def with_changes(self, **changes) -> "StoredElement":
        return replace(self, **changes)


@dataclass(frozen=True)
class RetrievedCandidate:
    element: StoredElement
    score: float
    page_relevance: Optional[float] = None
