"""
Candidate generation and consensus: model voting, algorithmic matching,
fusion, disambiguation and zoomed-in search.
"""

from screen_locator.grounding.algorithmic import find_algorithmic_candidates, within_dimension_deviation
from screen_locator.grounding.clustering import CandidateCluster, Source, cluster_regions, group_by_overlap
from screen_locator.grounding.disambiguator import (
    DisambiguationBallot,
    DisambiguationResult,
    DisambiguationState,
    Disambiguator,
    LabelStyle,
)
from screen_locator.grounding.fusion import fuse_candidates
from screen_locator.grounding.opencv_matcher import OpenCvMatcher
from screen_locator.grounding.voter import VisualGroundingVoter
from screen_locator.grounding.zoom import ZoomView, extend_search_area, zoom_in

__all__ = [
    "CandidateCluster",
    "Source",
    "cluster_regions",
    "group_by_overlap",
    "VisualGroundingVoter",
    "OpenCvMatcher",
    "find_algorithmic_candidates",
    "within_dimension_deviation",
    "fuse_candidates",
    "DisambiguationBallot",
    "DisambiguationResult",
    "DisambiguationState",
    "Disambiguator",
    "LabelStyle",
    "ZoomView",
    "extend_search_area",
    "zoom_in",
]
