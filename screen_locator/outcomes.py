"""
Terminal results of a location attempt and operator decisions.

Operator choices are plain values rather than exceptions so the
orchestrator can branch on them without unwinding the stack.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from PIL import Image

from screen_locator.common.geometry import Region
from screen_locator.elements import StoredElement
from screen_locator.errors import ErrorCategory

RETRIES_EXHAUSTED = "retries exhausted"
CANCELLED = "cancelled"


@dataclass(frozen=True)
class Found:
    region: Region
    element: Optional[StoredElement] = None
    attempts: int = 1


@dataclass(frozen=True)
class NotFound:
    reason: str
    category: Optional[ErrorCategory] = None
    detail: str = ""
    screenshot: Optional[Image.Image] = field(default=None, compare=False, repr=False)
    attempts: int = 1


@dataclass(frozen=True)
class Interrupted:
    reason: str
    category: Optional[ErrorCategory] = None
    attempts: int = 1


LocationOutcome = Union[Found, NotFound, Interrupted]


class UserDecision(str, Enum):
    CREATE_NEW = "create_new"
    REFINE = "refine"
    RETRY = "retry"
    TERMINATE = "terminate"


class LocationConfirmation(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    INTERRUPTED = "interrupted"
