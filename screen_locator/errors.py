"""
Error taxonomy for element location.

Every categorized failure is a ``LocationError`` carrying its
``ErrorCategory`` and whether a fresh attempt could plausibly succeed.
``TransientModelError`` and its subclasses mark model calls that failed
for reasons a later attempt may not share; the retry loop retries them
along with network and rate-limit errors. Anything else propagates.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    NO_CANDIDATES_IN_STORE = "NoCandidatesInStore"
    CANDIDATES_BELOW_CONFIDENCE_FLOOR = "CandidatesBelowConfidenceFloor"
    NO_VISUAL_MATCH_FOUND = "NoVisualMatchFound"
    DISAMBIGUATION_INCONSISTENT = "DisambiguationInconsistent"
    USER_TERMINATED = "UserTerminated"
    USER_INTERRUPTED = "UserInterrupted"
    CONFIGURATION_ERROR = "ConfigurationError"


class LocationError(Exception):
    """Base class for categorized location failures."""

    category: ErrorCategory = ErrorCategory.NO_VISUAL_MATCH_FOUND
    retryable: bool = True

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"{self.category.value}: {message}")


class NoCandidatesInStore(LocationError):
    category = ErrorCategory.NO_CANDIDATES_IN_STORE


class CandidatesBelowConfidenceFloor(LocationError):
    """Raised when nothing retrieved reaches the target floor."""

    category = ErrorCategory.CANDIDATES_BELOW_CONFIDENCE_FLOOR

    def __init__(self, message: str, general_candidates=()):
        self.general_candidates = tuple(general_candidates)
        super().__init__(message)


class NoVisualMatchFound(LocationError):
    category = ErrorCategory.NO_VISUAL_MATCH_FOUND


class DisambiguationInconsistent(LocationError):
    category = ErrorCategory.DISAMBIGUATION_INCONSISTENT


class ConfigurationError(LocationError):
    """Invalid configuration. Never retried; propagates to the caller."""

    category = ErrorCategory.CONFIGURATION_ERROR
    retryable = False

    def __init__(self, message: str, field: str = "unknown"):
        self.field = field
        super().__init__(message)


class TransientModelError(Exception):
    """A collaborator model could not produce any usable answer."""

    def __init__(self, message: str, failures: int = 0):
        self.message = message
        self.failures = failures
        super().__init__(message)


class GroundingModelError(TransientModelError):
    pass


class ValidationModelError(TransientModelError):
    pass


class ModelResponseError(TransientModelError):
    """The model endpoint answered with an error status or an unreadable body."""
