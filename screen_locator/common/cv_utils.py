"""
OpenCV and PIL conversion helpers.

Screens and reference images travel through the engine as PIL images;
the matchers work on OpenCV (BGR / grayscale) arrays.
"""

from __future__ import annotations

import base64
import io
import cv2
import numpy as np
from PIL import Image

from screen_locator.common.geometry import CoordinateSpace, Region


def pil_to_bgr(image: Image.Image) -> np.ndarray:
    rgb = np.array(image.convert("RGB"))
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)


def pil_to_gray(image: Image.Image) -> np.ndarray:
    return cv2.cvtColor(pil_to_bgr(image), cv2.COLOR_BGR2GRAY)


def crop(image: Image.Image, region: Region) -> Image.Image:
    """Crop an absolute region out of an image (clipped to its bounds)."""
    if region.space is not CoordinateSpace.ABSOLUTE:
        raise ValueError("Cropping requires an absolute region")
    clipped = region.clip(image.width, image.height)
    if clipped is None:
        raise ValueError(f"Region {region.as_tuple()} lies outside the image")
    return image.crop(clipped.to_pixel_box())


def scale_image(image: Image.Image, factor: float) -> Image.Image:
    f = float(factor)
    if abs(f - 1.0) < 1e-9:
        return image.copy()
    nw = int(max(1, round(image.width * f)))
    nh = int(max(1, round(image.height * f)))
    return image.resize((nw, nh), resample=Image.BICUBIC)


def encode_png(image: Image.Image) -> bytes:
    out = io.BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


def encode_png_base64(image: Image.Image) -> str:
    return base64.b64encode(encode_png(image)).decode("utf-8")


def decode_png_base64(data: str) -> Image.Image:
    raw = base64.b64decode(data.encode("utf-8"))
    with Image.open(io.BytesIO(raw)) as img:
        img.load()
        return img.convert("RGB")
