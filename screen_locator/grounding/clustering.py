"""
IoU clustering of candidate regions.

Repeated model proposals (or matches from several techniques) that land on
the same spot are grouped around a seed and replaced by their mean box.
Regions are sorted canonically first, so the result does not depend on the
order in which proposals arrived.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, List, Sequence, TypeVar

from screen_locator.common.geometry import Region, canonical_key, mean_region, overlaps_enough

T = TypeVar("T")


class Source(str, Enum):
    MODEL_VOTE = "model_vote"
    ALGORITHMIC = "algorithmic"


@dataclass(frozen=True)
class CandidateCluster:
    region: Region
    sources: FrozenSet[Source]
    votes: int

    @property
    def has_model_vote(self) -> bool:
        return Source.MODEL_VOTE in self.sources

    @property
    def is_algorithmic_only(self) -> bool:
        return self.sources == frozenset({Source.ALGORITHMIC})


def group_by_overlap(
    items: Sequence[T],
    *,
    region_of: Callable[[T], Region],
    min_iou: float,
) -> List[List[T]]:
    """
    Greedy seed clustering.

    The first unclustered item (in canonical region order) seeds a group;
    every other unclustered item whose region has IoU with the seed's region
    of at least ``min_iou`` joins it. Repeats until all items are assigned.

    Args:
        items: Items carrying regions in a single coordinate space.
        region_of: Accessor for an item's region.
        min_iou: Inclusive IoU threshold.

    Returns:
        Member lists, one per group, in canonical seed order.
    """
    ordered = sorted(items, key=lambda it: canonical_key(region_of(it)))
    used = [False for _ in ordered]
    groups: List[List[T]] = []
    for i, seed in enumerate(ordered):
        if used[i]:
            continue
        used[i] = True
        members = [seed]
        seed_region = region_of(seed)
        for j in range(i + 1, len(ordered)):
            if used[j]:
                continue
            if overlaps_enough(seed_region, region_of(ordered[j]), min_iou):
                used[j] = True
                members.append(ordered[j])
        groups.append(members)
    return groups


def group_regions(regions: Sequence[Region], *, min_iou: float) -> List[List[Region]]:
    return group_by_overlap(regions, region_of=lambda r: r, min_iou=min_iou)


def cluster_regions(
    regions: Sequence[Region],
    *,
    min_iou: float,
    source: Source,
    min_votes: int = 1,
) -> List[CandidateCluster]:
    """
    Cluster regions into CandidateClusters tagged with ``source``.

    Each cluster's region is the coordinate-wise mean of its members and its
    vote count is the member count. Clusters below ``min_votes`` are dropped.
    Output is ordered by descending votes, ties broken canonically.
    """
    clusters = [
        CandidateCluster(region=mean_region(members), sources=frozenset({source}), votes=len(members))
        for members in group_regions(regions, min_iou=min_iou)
        if len(members) >= int(min_votes)
    ]
    clusters.sort(key=lambda c: (-c.votes, canonical_key(c.region)))
    return clusters
