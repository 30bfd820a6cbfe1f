"""
Input validation for location requests.

Rejects inputs the pipeline cannot work with before any model is called:
blank or oversized descriptions, control characters, and screenshots
that are too small or too large to ground on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image


@dataclass
class ValidationConfig:
    """Configuration for input validation."""

    # Screenshot limits
    max_dimension: int = 8192
    min_dimension: int = 32

    # Description limits
    max_description_length: int = 2000


DEFAULT_CONFIG = ValidationConfig()


class ValidationError(Exception):
    """Raised when validation fails."""

    def __init__(self, message: str, field: str = "unknown"):
        self.message = message
        self.field = field
        super().__init__(f"{field}: {message}")


class InputValidator:
    def __init__(self, config: Optional[ValidationConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def validate_description(self, description: str, field: str = "description") -> str:
        """
        Validate and sanitize an element description.

        Returns:
            Description with control characters removed and whitespace collapsed

        Raises:
            ValidationError: If the description is blank or too long
        """
        text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", str(description or ""))
        text = " ".join(text.split())
        if not text:
            raise ValidationError("Description cannot be empty", field)
        if len(text) > self.config.max_description_length:
            raise ValidationError(
                f"Description too long (max {self.config.max_description_length} chars)", field
            )
        return text

    def validate_screenshot(self, image: Image.Image, field: str = "screenshot") -> Tuple[int, int]:
        """
        Check screenshot dimensions.

        Returns:
            Tuple of (width, height)

        Raises:
            ValidationError: If the image is missing or out of bounds
        """
        if image is None:
            raise ValidationError("Screenshot is missing", field)
        width, height = image.size
        if width < self.config.min_dimension or height < self.config.min_dimension:
            raise ValidationError(
                f"Image too small ({width}x{height}). "
                f"Minimum: {self.config.min_dimension}x{self.config.min_dimension}",
                field,
            )
        if width > self.config.max_dimension or height > self.config.max_dimension:
            raise ValidationError(
                f"Image too large ({width}x{height}). "
                f"Maximum: {self.config.max_dimension}x{self.config.max_dimension}",
                field,
            )
        return width, height
