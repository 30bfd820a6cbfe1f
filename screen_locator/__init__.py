"""
screen_locator: find a described UI element on a screenshot.

Combines a similarity store of known elements, repeated visual-grounding
votes, OpenCV matching on stored reference images, IoU fusion and
majority-vote disambiguation behind a deadline-bounded retry loop.
"""

from screen_locator.common.geometry import CoordinateSpace, Region
from screen_locator.config import LocatorConfig
from screen_locator.elements import RetrievedCandidate, StoredElement
from screen_locator.errors import ConfigurationError, ErrorCategory, LocationError
from screen_locator.locator_engine import AttemptContext, ElementLocator
from screen_locator.outcomes import (
    Found,
    Interrupted,
    LocationConfirmation,
    LocationOutcome,
    NotFound,
    UserDecision,
)

__version__ = "0.1.0"

__all__ = [
    "AttemptContext",
    "ConfigurationError",
    "CoordinateSpace",
    "ElementLocator",
    "ErrorCategory",
    "Found",
    "Interrupted",
    "LocationConfirmation",
    "LocationError",
    "LocationOutcome",
    "LocatorConfig",
    "NotFound",
    "Region",
    "RetrievedCandidate",
    "StoredElement",
    "UserDecision",
]
