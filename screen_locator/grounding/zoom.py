"""
Zoomed-in search for small elements.

The wide-area candidates are united, the union is widened to give the
model some surrounding context, and that part of the screen is cropped and
scaled up. Regions found on the zoomed image are mapped back to screen
pixels with ``ZoomView.to_screen``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from PIL import Image

from screen_locator.common.cv_utils import crop, scale_image
from screen_locator.common.geometry import CoordinateSpace, Region, union_region


@dataclass(frozen=True)
class ZoomView:
    area: Region
    factor: float
    image: Image.Image

    def to_screen(self, region: Region) -> Region:
        return region.scale(1.0 / self.factor).translate(self.area.x1, self.area.y1)


def extend_search_area(
    area: Region,
    *,
    ref_width: Optional[float],
    screen_w: int,
    screen_h: int,
    extension_ratio: float = 15.0,
) -> Region:
    """
    Widen ``area`` around its center to about ``extension_ratio`` reference widths.

    Growth is proportional in both axes, capped at half the screen per axis,
    and never shrinks the area. The result is clamped to the screen.
    """
    if area.space is not CoordinateSpace.ABSOLUTE:
        raise ValueError("Zoom areas must be absolute")
    ratio = 1.0
    if ref_width and area.width > 0:
        ratio = float(ref_width) * float(extension_ratio) / area.width
    new_w = area.width
    new_h = area.height
    if ratio > 1.0:
        new_w = max(area.width, min(area.width * ratio, screen_w / 2.0))
        new_h = max(area.height, min(area.height * ratio, screen_h / 2.0))
    cx, cy = area.center
    x1 = max(0.0, cx - new_w / 2.0)
    y1 = max(0.0, cy - new_h / 2.0)
    x2 = min(float(screen_w), x1 + new_w)
    y2 = min(float(screen_h), y1 + new_h)
    extended = Region(x1, y1, x2, y2).clip(screen_w, screen_h)
    if extended is None:
        raise ValueError(f"Zoom area {area.as_tuple()} lies outside the screen")
    return extended


def zoom_in(
    screen: Image.Image,
    regions: Sequence[Region],
    *,
    ref_width: Optional[float],
    scale_factor: float = 2.0,
    extension_ratio: float = 15.0,
) -> ZoomView:
    area = extend_search_area(
        union_region(regions),
        ref_width=ref_width,
        screen_w=screen.width,
        screen_h=screen.height,
        extension_ratio=extension_ratio,
    )
    # Integer pixel bounds so crop and back-mapping agree exactly.
    px1, py1, px2, py2 = area.to_pixel_box()
    area = Region(px1, py1, max(px2, px1 + 1), max(py2, py1 + 1))
    cropped = crop(screen, area)
    factor = max(1.0, min(float(screen.width) / float(cropped.width), float(scale_factor)))
    zoomed = scale_image(cropped, factor)
    return ZoomView(area=area, factor=float(zoomed.width) / float(cropped.width), image=zoomed)
