from __future__ import annotations

import time
from pathlib import Path
from typing import Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from screen_locator.common.geometry import Region
from screen_locator.common.text_utils import normalize_text

DEFAULT_STROKE = 3


def draw_labeled_regions(
    image: Image.Image,
    boxes: Sequence[Tuple[Region, str, str]],
    *,
    stroke: int = DEFAULT_STROKE,
) -> Image.Image:
    """Return a copy of ``image`` with each (region, label, color) box drawn on it."""
    out = image.convert("RGB").copy()
    draw = ImageDraw.Draw(out)
    font = ImageFont.load_default()
    for region, label, color in boxes:
        x1, y1, x2, y2 = region.to_pixel_box()
        draw.rectangle((x1, y1, x2, y2), outline=color, width=int(stroke))
        tx0, ty0, tx1, ty1 = draw.textbbox((0, 0), label, font=font)
        tw, th = tx1 - tx0, ty1 - ty0
        # Tag sits above the box, or inside it at the top edge of the screen.
        ly = y1 - th - 4 if y1 - th - 4 >= 0 else y1
        draw.rectangle((x1, ly, x1 + tw + 6, ly + th + 4), fill=color)
        draw.text((x1 + 3, ly + 2 - ty0), label, fill="white", font=font)
    return out


def draw_region(image: Image.Image, region: Region, *, color: str = "#ff0000") -> Image.Image:
    out = image.convert("RGB").copy()
    ImageDraw.Draw(out).rectangle(region.to_pixel_box(), outline=color, width=DEFAULT_STROKE)
    return out


def save_debug_image(image: Image.Image, directory: Optional[str], name: str) -> Optional[Path]:
    if not directory:
        return None
    base = Path(directory)
    base.mkdir(parents=True, exist_ok=True)
    slug = normalize_text(name).replace(" ", "_")[:64] or "image"
    path = base / f"{slug}_{int(time.time() * 1000)}.png"
    image.save(path, format="PNG")
    return path
