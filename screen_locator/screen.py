from __future__ import annotations

from PIL import Image


class StaticScreenSource:
    """Screen source that always returns the same image, e.g. a saved screenshot."""

    def __init__(self, image: Image.Image):
        self.image = image.convert("RGB")

    @classmethod
    def from_file(cls, path: str) -> "StaticScreenSource":
        with Image.open(path) as img:
            img.load()
            return cls(img)

    def capture(self) -> Image.Image:
        return self.image.copy()
