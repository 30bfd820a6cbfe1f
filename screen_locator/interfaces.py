"""
Collaborator contracts consumed by the locator.

Any object with matching methods can be injected; the bundled adapters in
``screen_locator.models`` and ``screen_locator.retrieval`` are one option.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from PIL import Image

from screen_locator.common.geometry import Region
from screen_locator.elements import RetrievedCandidate, StoredElement
from screen_locator.outcomes import LocationConfirmation, UserDecision


class SimilarityRetriever(Protocol):
    def retrieve(
        self,
        query: str,
        top_n: int,
        min_score: float,
        context_text: Optional[str] = None,
    ) -> List[RetrievedCandidate]:
        ...

    def store(self, element: StoredElement) -> None:
        ...

    def update(self, original: StoredElement, updated: StoredElement) -> None:
        ...

    def remove(self, element: StoredElement) -> None:
        ...


class VisualGrounder(Protocol):
    def propose_regions(self, description: str, image: Image.Image) -> List[Region]:
        ...


class Validator(Protocol):
    def choose_label(
        self, labeled_image: Image.Image, description: str, candidate_labels: Sequence[str]
    ) -> Optional[str]:
        ...


class AlgorithmicMatcher(Protocol):
    def feature_match(self, reference: Image.Image, screen: Image.Image, threshold: float) -> List[Region]:
        ...

    def correlation_match(self, reference: Image.Image, screen: Image.Image, threshold: float) -> List[Region]:
        ...


class PageDescriber(Protocol):
    def describe_page(self, image: Image.Image) -> str:
        ...


class ScreenSource(Protocol):
    def capture(self) -> Image.Image:
        ...


class UserInteraction(Protocol):
    def confirm_location(self, description: str, region: Region, image: Image.Image) -> LocationConfirmation:
        ...

    def prompt_next_action(self, reason: str) -> UserDecision:
        ...

    def create_new_element(self, description: str, image: Image.Image) -> Optional[Region]:
        ...

    def refine_elements(self, elements: Sequence[StoredElement], reason: str) -> bool:
        """Return False when the operator interrupted refinement."""
        ...
