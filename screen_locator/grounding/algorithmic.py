"""
Algorithmic candidates from the stored reference image.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Dict, List, Tuple

from PIL import Image

from screen_locator.common.geometry import Region, mean_region
from screen_locator.grounding.clustering import CandidateCluster, Source, group_by_overlap
from screen_locator.interfaces import AlgorithmicMatcher

logger = logging.getLogger(__name__)

FEATURE = "feature"
CORRELATION = "correlation"


def within_dimension_deviation(region: Region, ref_w: float, ref_h: float, ratio: float) -> bool:
    """True when width and height are both within ``ratio`` of the reference size."""
    tol = 1e-9
    max_dw = float(ref_w) * float(ratio) + tol
    max_dh = float(ref_h) * float(ratio) + tol
    return abs(region.width - float(ref_w)) <= max_dw and abs(region.height - float(ref_h)) <= max_dh


def find_algorithmic_candidates(
    matcher: AlgorithmicMatcher,
    reference: Image.Image,
    screen: Image.Image,
    *,
    threshold: float = 0.8,
    max_matches: int = 6,
    deviation_ratio: float = 0.3,
    min_iou: float = 0.7,
) -> List[CandidateCluster]:
    """
    Run both matching techniques and coalesce their results.

    Matches whose size deviates from the reference by more than
    ``deviation_ratio`` (either direction) are dropped, each technique keeps
    at most ``max_matches``, and overlapping survivors are merged. A
    cluster's votes are the number of distinct techniques that found it.
    """
    techniques = {
        FEATURE: matcher.feature_match,
        CORRELATION: matcher.correlation_match,
    }
    found: Dict[str, List[Region]] = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=len(techniques)) as executor:
        futures = {
            name: executor.submit(fn, reference, screen, threshold)
            for name, fn in techniques.items()
        }
        for name, future in futures.items():
            try:
                found[name] = list(future.result() or [])
            except Exception as exc:
                logger.warning("%s matching failed: %s", name, exc)
                found[name] = []

    ref_w, ref_h = reference.size
    tagged: List[Tuple[str, Region]] = []
    for name in (FEATURE, CORRELATION):
        kept = [
            r for r in found[name]
            if within_dimension_deviation(r, ref_w, ref_h, deviation_ratio)
        ][: int(max_matches)]
        if len(kept) < len(found[name]):
            logger.debug("%s matching: kept %d of %d regions", name, len(kept), len(found[name]))
        tagged.extend((name, r) for r in kept)

    clusters = []
    for members in group_by_overlap(tagged, region_of=lambda t: t[1], min_iou=min_iou):
        clusters.append(
            CandidateCluster(
                region=mean_region([r for _, r in members]),
                sources=frozenset({Source.ALGORITHMIC}),
                votes=len({name for name, _ in members}),
            )
        )
    clusters.sort(key=lambda c: (-c.votes, c.region.as_tuple()))
    logger.info("Algorithmic search: %d candidate clusters", len(clusters))
    return clusters
