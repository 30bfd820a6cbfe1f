"""
Region geometry.

A Region is an axis-aligned box tagged with the coordinate space it lives in.
Model output arrives in a 0..1000 normalized space while every pixel
operation (cropping, template matching, drawing) works in absolute pixels,
so conversions are always explicit.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple

from screen_locator.common.math_utils import clamp01

NORMALIZED_SCALE = 1000.0

# Regions at exactly the IoU threshold must merge despite float rounding.
IOU_EPSILON = 1e-9


class CoordinateSpace(str, Enum):
    NORMALIZED = "normalized"
    ABSOLUTE = "absolute"


@dataclass(frozen=True)
class Region:
    """Box given by its top-left (x1, y1) and bottom-right (x2, y2) corners."""

    x1: float
    y1: float
    x2: float
    y2: float
    space: CoordinateSpace = CoordinateSpace.ABSOLUTE

    def __post_init__(self) -> None:
        if not (self.x2 > self.x1 and self.y2 > self.y1):
            raise ValueError(
                f"Degenerate region ({self.x1}, {self.y1}, {self.x2}, {self.y2}): "
                "x2 must exceed x1 and y2 must exceed y1"
            )

    @classmethod
    def from_xywh(
        cls, x: float, y: float, w: float, h: float, space: CoordinateSpace = CoordinateSpace.ABSOLUTE
    ) -> "Region":
        return cls(float(x), float(y), float(x + w), float(y + h), space)

    @property
    def width(self) -> float:
        return float(self.x2 - self.x1)

    @property
    def height(self) -> float:
        return float(self.y2 - self.y1)

    @property
    def area(self) -> float:
        return float(self.width * self.height)

    @property
    def center(self) -> Tuple[float, float]:
        return (float(self.x1 + self.x2) / 2.0, float(self.y1 + self.y2) / 2.0)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (float(self.x1), float(self.y1), float(self.x2), float(self.y2))

    def to_pixel_box(self) -> Tuple[int, int, int, int]:
        """Integer (x1, y1, x2, y2) suitable for PIL crop and draw calls."""
        if self.space is not CoordinateSpace.ABSOLUTE:
            raise ValueError("Pixel boxes require an absolute region")
        return (int(round(self.x1)), int(round(self.y1)), int(round(self.x2)), int(round(self.y2)))

    def to_absolute(self, width: int, height: int) -> "Region":
        if self.space is CoordinateSpace.ABSOLUTE:
            return self
        sx = float(width) / NORMALIZED_SCALE
        sy = float(height) / NORMALIZED_SCALE
        return Region(self.x1 * sx, self.y1 * sy, self.x2 * sx, self.y2 * sy, CoordinateSpace.ABSOLUTE)

    def to_normalized(self, width: int, height: int) -> "Region":
        if self.space is CoordinateSpace.NORMALIZED:
            return self
        if width <= 0 or height <= 0:
            raise ValueError("Image dimensions must be positive")
        sx = NORMALIZED_SCALE / float(width)
        sy = NORMALIZED_SCALE / float(height)
        return Region(self.x1 * sx, self.y1 * sy, self.x2 * sx, self.y2 * sy, CoordinateSpace.NORMALIZED)

    def translate(self, dx: float, dy: float) -> "Region":
        return Region(self.x1 + dx, self.y1 + dy, self.x2 + dx, self.y2 + dy, self.space)

    def scale(self, factor: float) -> "Region":
        f = float(factor)
        return Region(self.x1 * f, self.y1 * f, self.x2 * f, self.y2 * f, self.space)

    def clip(self, width: float, height: float) -> Optional["Region"]:
        """Clip to [0, width] x [0, height]; None when nothing is left."""
        x1 = max(0.0, float(self.x1))
        y1 = max(0.0, float(self.y1))
        x2 = min(float(width), float(self.x2))
        y2 = min(float(height), float(self.y2))
        if x2 <= x1 or y2 <= y1:
            return None
        return Region(x1, y1, x2, y2, self.space)


def _require_same_space(regions: Sequence[Region]) -> CoordinateSpace:
    if not regions:
        raise ValueError("At least one region is required")
    space = regions[0].space
    for r in regions[1:]:
        if r.space is not space:
            raise ValueError(f"Cannot combine regions in {space.value} and {r.space.value} space")
    return space


def canonical_key(region: Region) -> Tuple[float, float, float, float]:
    return region.as_tuple()


def iou(a: Region, b: Region) -> float:
    _require_same_space([a, b])
    ix0 = max(a.x1, b.x1)
    iy0 = max(a.y1, b.y1)
    ix1 = min(a.x2, b.x2)
    iy1 = min(a.y2, b.y2)
    iw = max(0.0, ix1 - ix0)
    ih = max(0.0, iy1 - iy0)
    inter = float(iw * ih)
    if inter <= 0.0:
        return 0.0
    union = float(a.area + b.area - inter)
    if union <= 1e-9:
        return 0.0
    return float(clamp01(inter / union))


def overlaps_enough(a: Region, b: Region, threshold: float) -> bool:
    """Inclusive IoU test: a pair exactly at the threshold qualifies."""
    return iou(a, b) + IOU_EPSILON >= float(threshold)


def mean_region(regions: Sequence[Region], weights: Optional[Sequence[float]] = None) -> Region:
    """Coordinate-wise (optionally weighted) mean of same-space regions."""
    space = _require_same_space(regions)
    if weights is None:
        weights = [1.0] * len(regions)
    if len(weights) != len(regions):
        raise ValueError("weights must match regions")
    total = float(sum(weights))
    if total <= 0.0:
        raise ValueError("weights must sum to a positive value")
    acc = [0.0, 0.0, 0.0, 0.0]
    for r, w in zip(regions, weights):
        for i, v in enumerate(r.as_tuple()):
            acc[i] += float(v) * float(w)
    return Region(acc[0] / total, acc[1] / total, acc[2] / total, acc[3] / total, space)


def union_region(regions: Iterable[Region]) -> Region:
    """Smallest region covering all of the given regions."""
    regions = list(regions)
    space = _require_same_space(regions)
    return Region(
        min(r.x1 for r in regions),
        min(r.y1 for r in regions),
        max(r.x2 for r in regions),
        max(r.y2 for r in regions),
        space,
    )
