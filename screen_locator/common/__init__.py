"""
Common utilities shared across screen_locator modules.
"""

from screen_locator.common.geometry import (
    CoordinateSpace,
    Region,
    iou,
    mean_region,
    overlaps_enough,
    union_region,
)
from screen_locator.common.math_utils import clamp01, cosine_similarity, relevance_from_cosine
from screen_locator.common.text_utils import is_blank, match_label, normalize_text

__all__ = [
    # Geometry
    "CoordinateSpace",
    "Region",
    "iou",
    "mean_region",
    "overlaps_enough",
    "union_region",
    # Math utilities
    "clamp01",
    "cosine_similarity",
    "relevance_from_cosine",
    # Text utilities
    "is_blank",
    "match_label",
    "normalize_text",
]
