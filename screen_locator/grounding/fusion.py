"""
Fusion of model-vote and algorithmic candidates.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from screen_locator.common.geometry import canonical_key, mean_region, overlaps_enough
from screen_locator.grounding.clustering import CandidateCluster

logger = logging.getLogger(__name__)


def merge_clusters(a: CandidateCluster, b: CandidateCluster) -> CandidateCluster:
    """Vote-weighted mean region, union of sources, summed votes."""
    return CandidateCluster(
        region=mean_region([a.region, b.region], weights=[max(1, a.votes), max(1, b.votes)]),
        sources=a.sources | b.sources,
        votes=a.votes + b.votes,
    )


def _canonical_order(cluster: CandidateCluster):
    return (canonical_key(cluster.region), sorted(s.value for s in cluster.sources), cluster.votes)


def fusion_sort_key(cluster: CandidateCluster, *, algorithmic_trust_floor: int):
    demoted = cluster.is_algorithmic_only and cluster.votes < int(algorithmic_trust_floor)
    return (
        demoted,
        -cluster.votes,
        not cluster.has_model_vote,
        -cluster.region.area,
        canonical_key(cluster.region),
    )


def fuse_candidates(
    model_clusters: Sequence[CandidateCluster],
    algorithmic_clusters: Sequence[CandidateCluster] = (),
    *,
    min_iou: float = 0.7,
    algorithmic_trust_floor: int = 2,
) -> List[CandidateCluster]:
    """
    Merge overlapping clusters regardless of source and rank the result.

    Any pair whose IoU reaches ``min_iou`` is merged; merging repeats until no
    pair qualifies. Ranking puts clusters backed only by fewer than
    ``algorithmic_trust_floor`` algorithmic votes last, then orders by votes,
    preferring model-vote support over pure algorithmic support at equal
    votes, then by larger area.

    Args:
        model_clusters: Clusters from the grounding voter.
        algorithmic_clusters: Clusters from the algorithmic matcher.
        min_iou: Inclusive IoU merge threshold.
        algorithmic_trust_floor: Votes an algorithmic-only cluster needs to
            rank on votes alone.

    Returns:
        Deduplicated clusters, best first.
    """
    pool = sorted(list(model_clusters) + list(algorithmic_clusters), key=_canonical_order)

    changed = True
    while changed:
        changed = False
        for i in range(len(pool)):
            for j in range(i + 1, len(pool)):
                if overlaps_enough(pool[i].region, pool[j].region, min_iou):
                    merged = merge_clusters(pool[i], pool[j])
                    pool = [c for k, c in enumerate(pool) if k not in (i, j)] + [merged]
                    pool.sort(key=_canonical_order)
                    changed = True
                    break
            if changed:
                break

    pool.sort(key=lambda c: fusion_sort_key(c, algorithmic_trust_floor=algorithmic_trust_floor))
    logger.info(
        "Fused candidates: %s",
        [(c.region.as_tuple(), c.votes, sorted(s.value for s in c.sources)) for c in pool],
    )
    return pool
