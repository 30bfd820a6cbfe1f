"""
Text processing utility functions.

These functions normalize free-form model answers and descriptions
before they are compared.
"""

from __future__ import annotations

import re
from typing import Optional, Sequence

NONE_ANSWERS = frozenset({"none", "no", "null", "n a", "na", "nothing", "no match"})

_LABEL_PREFIXES = ("label", "box", "bounding box", "candidate", "id")


def normalize_text(s: str) -> str:
    """
    Normalize text for comparison: lowercase, alphanumeric only, single spaces.

    Args:
        s: Input string.

    Returns:
        Normalized string.
    """
    t = str(s or "").lower()
    t = re.sub(r"[^a-z0-9]+", " ", t)
    return re.sub(r"\s+", " ", t).strip()


def is_blank(s: Optional[str]) -> bool:
    return not str(s or "").strip()


def match_label(answer: Optional[str], labels: Sequence[str]) -> Optional[str]:
    """
    Map a validation-model answer onto one of the candidate labels.

    Accepts answers such as "B", "b.", "Label B" or "box b". Anything that
    does not name exactly one candidate label, including explicit "none"
    answers, yields None.

    Args:
        answer: Raw answer text.
        labels: Candidate labels in display order.

    Returns:
        The matching label as given in ``labels``, or None.
    """
    t = normalize_text(answer or "")
    if not t or t in NONE_ANSWERS:
        return None
    for prefix in _LABEL_PREFIXES:
        if t.startswith(prefix + " "):
            t = t[len(prefix) + 1 :].strip()
            break
    by_norm = {normalize_text(lbl): lbl for lbl in labels}
    return by_norm.get(t)
