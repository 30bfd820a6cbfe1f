from __future__ import annotations

import unittest

from screen_locator.common.geometry import Region
from screen_locator.errors import ConfigurationError, ValidationModelError
from screen_locator.grounding.clustering import CandidateCluster, Source
from screen_locator.grounding.disambiguator import (
    NONE_VOTE,
    DisambiguationBallot,
    DisambiguationState,
    Disambiguator,
    assign_labels,
)
from tests.fakes import ScriptedValidator, blank_screen


def _clusters(n: int):
    return [
        CandidateCluster(
            region=Region(20 + 60 * i, 40, 60 + 60 * i, 70),
            sources=frozenset({Source.MODEL_VOTE}),
            votes=2,
        )
        for i in range(n)
    ]


class TestBallot(unittest.TestCase):
    def test_strict_majority_wins(self) -> None:
        ballot = DisambiguationBallot(required_votes=3)
        for label in ("A", "A", "B"):
            ballot.record(label)
        self.assertEqual(ballot.winner(), "A")

    def test_split_vote_has_no_winner(self) -> None:
        ballot = DisambiguationBallot(required_votes=3)
        for label in ("A", "B", None):
            ballot.record(label)
        self.assertIsNone(ballot.winner())
        self.assertEqual(ballot.counts[NONE_VOTE], 1)

    def test_half_is_not_a_majority(self) -> None:
        ballot = DisambiguationBallot(required_votes=4)
        for label in ("A", "A", "B", "B"):
            ballot.record(label)
        self.assertIsNone(ballot.winner())


class TestLabels(unittest.TestCase):
    def test_labels_follow_palette_order(self) -> None:
        palette = (("X", "#ff0000"), ("Y", "#00ff00"), ("Z", "#0000ff"))
        labeled = assign_labels(_clusters(2), palette)
        self.assertEqual([style.label for style, _ in labeled], ["X", "Y"])

    def test_label_budget_exceeded(self) -> None:
        palette = (("A", "#ff0000"), ("B", "#00ff00"))
        with self.assertRaises(ConfigurationError):
            assign_labels(_clusters(3), palette)


class TestDisambiguator(unittest.TestCase):
    def test_majority_picks_candidate(self) -> None:
        candidates = _clusters(2)
        validator = ScriptedValidator(["B", "b", "A"])
        result = Disambiguator(validator, votes=3).disambiguate(candidates, blank_screen(), "Save button")
        self.assertEqual(result.state, DisambiguationState.RESOLVED)
        self.assertIs(result.winner, candidates[1])
        self.assertEqual(validator.calls, 3)
        self.assertEqual(validator.seen_labels[0], ["A", "B"])
        self.assertIsNotNone(result.labeled_image)

    def test_unknown_answers_count_as_none(self) -> None:
        validator = ScriptedValidator(["A", "Q", "none"])
        result = Disambiguator(validator, votes=3).disambiguate(_clusters(2), blank_screen(), "Save button")
        self.assertEqual(result.state, DisambiguationState.UNRESOLVED)
        self.assertIsNone(result.winner)
        self.assertEqual(result.ballot.counts, {"A": 1, NONE_VOTE: 2})

    def test_failed_calls_cost_votes(self) -> None:
        validator = ScriptedValidator(["A", RuntimeError("timeout"), "A"])
        result = Disambiguator(validator, votes=3).disambiguate(_clusters(2), blank_screen(), "Save button")
        self.assertEqual(result.state, DisambiguationState.RESOLVED)

    def test_all_calls_failing_is_transient(self) -> None:
        validator = ScriptedValidator([RuntimeError("down")])
        with self.assertRaises(ValidationModelError):
            Disambiguator(validator, votes=3).disambiguate(_clusters(2), blank_screen(), "Save button")

    def test_too_many_candidates(self) -> None:
        validator = ScriptedValidator(["A"])
        palette = (("A", "#ff0000"), ("B", "#00ff00"))
        with self.assertRaises(ConfigurationError):
            Disambiguator(validator, votes=3, palette=palette).disambiguate(_clusters(3), blank_screen(), "x")
        self.assertEqual(validator.calls, 0)


if __name__ == "__main__":
    unittest.main()
