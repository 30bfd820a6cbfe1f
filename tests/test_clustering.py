from __future__ import annotations

import itertools
import unittest

from screen_locator.common.geometry import Region
from screen_locator.grounding.clustering import Source, cluster_regions


def _snapshot(clusters):
    return [(c.region.as_tuple(), c.votes, tuple(sorted(s.value for s in c.sources))) for c in clusters]


class TestClusterDeterminism(unittest.TestCase):
    def test_permutation_invariance(self) -> None:
        regions = [
            Region(100, 100, 150, 130),
            Region(102, 101, 151, 131),
            Region(400, 300, 460, 330),
            Region(99, 99, 149, 129),
            Region(401, 302, 459, 331),
        ]
        expected = _snapshot(cluster_regions(regions, min_iou=0.7, source=Source.MODEL_VOTE))
        for perm in itertools.permutations(regions):
            got = _snapshot(cluster_regions(list(perm), min_iou=0.7, source=Source.MODEL_VOTE))
            self.assertEqual(got, expected)

    def test_votes_and_mean_region(self) -> None:
        regions = [Region(0, 0, 10, 10), Region(2, 0, 12, 10), Region(100, 100, 110, 110)]
        clusters = cluster_regions(regions, min_iou=0.5, source=Source.MODEL_VOTE)
        self.assertEqual([c.votes for c in clusters], [2, 1])
        self.assertEqual(clusters[0].region.as_tuple(), (1.0, 0.0, 11.0, 10.0))
        self.assertEqual(clusters[0].sources, frozenset({Source.MODEL_VOTE}))


class TestClusterThreshold(unittest.TestCase):
    def test_exact_threshold_merges(self) -> None:
        clusters = cluster_regions(
            [Region(0, 0, 10, 10), Region(0, 0, 10, 7)], min_iou=0.7, source=Source.MODEL_VOTE
        )
        self.assertEqual(len(clusters), 1)
        self.assertEqual(clusters[0].votes, 2)

    def test_just_below_threshold_stays_apart(self) -> None:
        clusters = cluster_regions(
            [Region(0, 0, 10, 10), Region(0, 0, 10, 6.9)], min_iou=0.7, source=Source.MODEL_VOTE
        )
        self.assertEqual(len(clusters), 2)

    def test_single_proposals_are_kept(self) -> None:
        regions = [Region(0, 0, 10, 10), Region(0, 0, 10, 10), Region(50, 50, 60, 60)]
        clusters = cluster_regions(regions, min_iou=0.7, source=Source.MODEL_VOTE)
        self.assertEqual([c.votes for c in clusters], [2, 1])
        self.assertEqual(clusters[1].region.as_tuple(), (50.0, 50.0, 60.0, 60.0))

    def test_min_votes_is_an_opt_in_filter(self) -> None:
        regions = [Region(0, 0, 10, 10), Region(0, 0, 10, 10), Region(50, 50, 60, 60)]
        clusters = cluster_regions(regions, min_iou=0.7, source=Source.MODEL_VOTE, min_votes=2)
        self.assertEqual(len(clusters), 1)
        self.assertEqual(clusters[0].region.as_tuple(), (0.0, 0.0, 10.0, 10.0))

    def test_empty_input(self) -> None:
        self.assertEqual(cluster_regions([], min_iou=0.7, source=Source.ALGORITHMIC), [])


if __name__ == "__main__":
    unittest.main()
