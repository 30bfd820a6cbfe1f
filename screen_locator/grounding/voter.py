"""
Visual grounding by repeated model votes.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import List

from PIL import Image

from screen_locator.common.geometry import Region
from screen_locator.errors import GroundingModelError
from screen_locator.grounding.clustering import CandidateCluster, Source, cluster_regions
from screen_locator.interfaces import VisualGrounder

logger = logging.getLogger(__name__)


class VisualGroundingVoter:
    """
    Ask a grounding model K times for the element and cluster the answers.

    The K calls are independent reads and run on a thread pool; the results
    are joined before clustering. A failed call costs one vote. Only when
    every call fails is the whole round treated as a transient error.
    """

    def __init__(
        self,
        grounder: VisualGrounder,
        *,
        votes: int = 5,
        min_iou: float = 0.7,
        min_cluster_votes: int = 1,
        max_workers: int = 8,
    ):
        if int(votes) < 1:
            raise ValueError("votes must be at least 1")
        self.grounder = grounder
        self.votes = int(votes)
        self.min_iou = float(min_iou)
        self.min_cluster_votes = int(min_cluster_votes)
        self.max_workers = int(max(1, max_workers))

    def propose(self, description: str, image: Image.Image) -> List[Region]:
        """Collect all proposals of the K calls in absolute pixels of ``image``."""
        workers = min(self.votes, self.max_workers)
        proposals: List[Region] = []
        failures = 0
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self.grounder.propose_regions, description, image)
                for _ in range(self.votes)
            ]
            for future in futures:
                try:
                    regions = future.result()
                except Exception as exc:
                    failures += 1
                    logger.warning("Grounding call failed: %s", exc)
                    continue
                for r in regions or []:
                    clipped = r.to_absolute(image.width, image.height).clip(image.width, image.height)
                    if clipped is not None:
                        proposals.append(clipped)

        if failures >= self.votes:
            raise GroundingModelError(f"All {self.votes} grounding calls failed", failures=failures)
        logger.info(
            "Grounding round: %d proposals from %d/%d successful calls",
            len(proposals), self.votes - failures, self.votes,
        )
        return proposals

    def vote(self, description: str, image: Image.Image) -> List[CandidateCluster]:
        proposals = self.propose(description, image)
        clusters = cluster_regions(
            proposals,
            min_iou=self.min_iou,
            source=Source.MODEL_VOTE,
            min_votes=self.min_cluster_votes,
        )
        logger.info(
            "Grounding clusters: %s",
            [(c.region.as_tuple(), c.votes) for c in clusters],
        )
        return clusters
