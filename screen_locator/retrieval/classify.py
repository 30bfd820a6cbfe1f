"""
Classification of retrieved candidates against the score floors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from screen_locator.elements import RetrievedCandidate

TARGET = "target"
GENERAL = "general"
BELOW = "below"


def classify_score(score: float, *, target_floor: float, general_floor: float) -> str:
    if float(score) >= float(target_floor):
        return TARGET
    if float(score) >= float(general_floor):
        return GENERAL
    return BELOW


@dataclass(frozen=True)
class RetrievalClassification:
    target: Tuple[RetrievedCandidate, ...]
    general: Tuple[RetrievedCandidate, ...]
    below: Tuple[RetrievedCandidate, ...]

    @property
    def is_empty(self) -> bool:
        return not (self.target or self.general or self.below)

    @property
    def best(self) -> RetrievedCandidate:
        return self.target[0]


def classify_candidates(
    candidates: Sequence[RetrievedCandidate],
    *,
    target_floor: float,
    general_floor: float,
) -> RetrievalClassification:
    """Split candidates by floor, keeping the retriever's order within each group."""
    buckets = {TARGET: [], GENERAL: [], BELOW: []}
    for c in candidates:
        buckets[classify_score(c.score, target_floor=target_floor, general_floor=general_floor)].append(c)
    return RetrievalClassification(
        target=tuple(buckets[TARGET]),
        general=tuple(buckets[GENERAL]),
        below=tuple(buckets[BELOW]),
    )


def filter_by_page_relevance(candidates: Sequence[RetrievedCandidate], floor: float) -> List[RetrievedCandidate]:
    """Candidates whose page relevance reaches ``floor``, best name score first."""
    kept = [c for c in candidates if c.page_relevance is not None and c.page_relevance >= float(floor)]
    return sorted(kept, key=lambda c: -c.score)
