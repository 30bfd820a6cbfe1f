from __future__ import annotations

import unittest

from PIL import Image

from screen_locator.common.geometry import Region
from screen_locator.grounding.algorithmic import find_algorithmic_candidates, within_dimension_deviation
from screen_locator.grounding.clustering import Source
from screen_locator.grounding.opencv_matcher import OpenCvMatcher
from tests.fakes import RecordingMatcher, blank_screen, noise_image


class BrokenMatcher(RecordingMatcher):
    def feature_match(self, reference, screen, threshold):
        raise RuntimeError("no descriptors")


class TestDimensionDeviation(unittest.TestCase):
    def test_both_directions(self) -> None:
        def ok(width: float) -> bool:
            return within_dimension_deviation(Region.from_xywh(0, 0, width, 100), 100, 100, 0.3)

        self.assertTrue(ok(130))
        self.assertFalse(ok(131))
        self.assertTrue(ok(70))
        self.assertFalse(ok(69))

    def test_height_is_checked_too(self) -> None:
        self.assertFalse(within_dimension_deviation(Region.from_xywh(0, 0, 100, 140), 100, 100, 0.3))


class TestFindAlgorithmicCandidates(unittest.TestCase):
    def setUp(self) -> None:
        self.reference = Image.new("RGB", (40, 20), (10, 10, 10))
        self.screen = blank_screen()

    def test_agreeing_techniques_count_two_votes(self) -> None:
        matcher = RecordingMatcher(
            feature=[Region(100, 100, 140, 120)],
            correlation=[Region(101, 100, 141, 120), Region(300, 300, 340, 320)],
        )
        clusters = find_algorithmic_candidates(matcher, self.reference, self.screen, min_iou=0.7)
        self.assertEqual([c.votes for c in clusters], [2, 1])
        self.assertEqual(clusters[0].sources, frozenset({Source.ALGORITHMIC}))
        self.assertEqual(clusters[0].region.as_tuple(), (100.5, 100.0, 140.5, 120.0))

    def test_repeated_hits_of_one_technique_count_once(self) -> None:
        matcher = RecordingMatcher(correlation=[Region(100, 100, 140, 120), Region(100, 101, 140, 121)])
        clusters = find_algorithmic_candidates(matcher, self.reference, self.screen, min_iou=0.7)
        self.assertEqual(len(clusters), 1)
        self.assertEqual(clusters[0].votes, 1)

    def test_off_size_matches_dropped(self) -> None:
        matcher = RecordingMatcher(feature=[Region(100, 100, 200, 120)], correlation=[Region(0, 0, 40, 20)])
        clusters = find_algorithmic_candidates(matcher, self.reference, self.screen, deviation_ratio=0.3)
        self.assertEqual([c.region.as_tuple() for c in clusters], [(0.0, 0.0, 40.0, 20.0)])

    def test_matches_capped_per_technique(self) -> None:
        hits = [Region.from_xywh(60 * i, 0, 40, 20) for i in range(8)]
        matcher = RecordingMatcher(correlation=hits)
        clusters = find_algorithmic_candidates(matcher, self.reference, self.screen, max_matches=3)
        self.assertEqual(len(clusters), 3)

    def test_failing_technique_is_skipped(self) -> None:
        matcher = BrokenMatcher(correlation=[Region(0, 0, 40, 20)])
        clusters = find_algorithmic_candidates(matcher, self.reference, self.screen)
        self.assertEqual(len(clusters), 1)


class TestOpenCvMatcher(unittest.TestCase):
    def test_correlation_finds_pasted_patch(self) -> None:
        screen = noise_image(320, 240, seed=1)
        patch = noise_image(40, 24, seed=2)
        screen.paste(patch, (150, 90))
        regions = OpenCvMatcher(max_matches=3).correlation_match(patch, screen, 0.9)
        self.assertEqual(len(regions), 1)
        self.assertEqual(regions[0].as_tuple(), (150.0, 90.0, 190.0, 114.0))

    def test_reference_larger_than_screen(self) -> None:
        regions = OpenCvMatcher().correlation_match(noise_image(100, 100), noise_image(50, 50), 0.8)
        self.assertEqual(regions, [])

    def test_featureless_reference_yields_nothing(self) -> None:
        reference = Image.new("RGB", (40, 40), (128, 128, 128))
        self.assertEqual(OpenCvMatcher().feature_match(reference, noise_image(200, 200), 0.8), [])


if __name__ == "__main__":
    unittest.main()
