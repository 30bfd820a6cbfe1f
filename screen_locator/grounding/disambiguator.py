"""
Majority-vote disambiguation between several candidate regions.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image

from screen_locator.common.text_utils import match_label
from screen_locator.config import DEFAULT_LABEL_PALETTE
from screen_locator.errors import ConfigurationError, ValidationModelError
from screen_locator.grounding.clustering import CandidateCluster
from screen_locator.interfaces import Validator
from screen_locator.visualization.overlay import draw_labeled_regions

logger = logging.getLogger(__name__)

NONE_VOTE = "none"


class DisambiguationState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class LabelStyle:
    label: str
    color: str


@dataclass
class DisambiguationBallot:
    """Votes per label; ``NONE_VOTE`` counts answers naming no candidate."""

    required_votes: int
    counts: Dict[str, int] = field(default_factory=dict)
    cast: int = 0

    def record(self, label: Optional[str]) -> None:
        key = label if label is not None else NONE_VOTE
        self.counts[key] = self.counts.get(key, 0) + 1
        self.cast += 1

    def winner(self) -> Optional[str]:
        for label, n in self.counts.items():
            if label != NONE_VOTE and 2 * n > int(self.required_votes):
                return label
        return None


@dataclass
class DisambiguationResult:
    state: DisambiguationState
    ballot: DisambiguationBallot
    labels: Dict[str, CandidateCluster]
    labeled_image: Optional[Image.Image] = None

    @property
    def winner(self) -> Optional[CandidateCluster]:
        label = self.ballot.winner()
        return self.labels.get(label) if label is not None else None


def assign_labels(
    candidates: Sequence[CandidateCluster],
    palette: Sequence[Tuple[str, str]],
) -> List[Tuple[LabelStyle, CandidateCluster]]:
    if len(candidates) > len(palette):
        raise ConfigurationError(
            f"{len(candidates)} candidates exceed the label budget of {len(palette)}",
            "label_palette",
        )
    return [(LabelStyle(lbl, color), c) for (lbl, color), c in zip(palette, candidates)]


class Disambiguator:
    """
    Pick one of several candidates by asking a validation model M times.

    Candidates are drawn with distinct labels on a copy of the screen; each
    model call names one label (or none). A label wins only with more than
    M/2 votes, otherwise the result is UNRESOLVED.
    """

    def __init__(
        self,
        validator: Validator,
        *,
        votes: int = 3,
        palette: Sequence[Tuple[str, str]] = (),
        max_workers: int = 8,
    ):
        if int(votes) < 1:
            raise ValueError("votes must be at least 1")
        if not palette:
            palette = DEFAULT_LABEL_PALETTE
        self.validator = validator
        self.votes = int(votes)
        self.palette = tuple(palette)
        self.max_workers = int(max(1, max_workers))

    def disambiguate(
        self,
        candidates: Sequence[CandidateCluster],
        image: Image.Image,
        description: str,
    ) -> DisambiguationResult:
        labeled = assign_labels(candidates, self.palette)
        labels = {style.label: c for style, c in labeled}
        labeled_image = draw_labeled_regions(
            image, [(c.region, style.label, style.color) for style, c in labeled]
        )
        label_list = [style.label for style, _ in labeled]

        ballot = DisambiguationBallot(required_votes=self.votes)
        failures = 0
        with concurrent.futures.ThreadPoolExecutor(max_workers=min(self.votes, self.max_workers)) as executor:
            futures = [
                executor.submit(self.validator.choose_label, labeled_image, description, label_list)
                for _ in range(self.votes)
            ]
            for future in futures:
                try:
                    answer = future.result()
                except Exception as exc:
                    failures += 1
                    logger.warning("Validation call failed: %s", exc)
                    continue
                ballot.record(match_label(answer, label_list))

        if failures >= self.votes:
            raise ValidationModelError(f"All {self.votes} validation calls failed", failures=failures)

        state = DisambiguationState.RESOLVED if ballot.winner() is not None else DisambiguationState.UNRESOLVED
        logger.info("Disambiguation %s with votes %s", state.value, dict(ballot.counts))
        return DisambiguationResult(state=state, ballot=ballot, labels=labels, labeled_image=labeled_image)
