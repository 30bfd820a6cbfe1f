"""
Mathematical utility functions.

These functions provide the numerical operations shared by retrieval
scoring and region geometry.
"""

from __future__ import annotations

import numpy as np


def clamp01(x: float) -> float:
    """
    Clamp a value to the [0, 1] range.

    Args:
        x: Input value.

    Returns:
        Value clamped between 0.0 and 1.0.
    """
    if x < 0.0:
        return 0.0
    if x > 1.0:
        return 1.0
    return float(x)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Compute the cosine similarity of two embedding vectors.

    Returns 0.0 if either vector has (near) zero norm.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        Cosine similarity in [-1, 1].
    """
    va = np.asarray(a, dtype=np.float32).ravel()
    vb = np.asarray(b, dtype=np.float32).ravel()
    if va.shape != vb.shape:
        raise ValueError(f"Embedding size mismatch: {va.shape} vs {vb.shape}")
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na <= 1e-12 or nb <= 1e-12:
        return 0.0
    cos = float(np.dot(va, vb) / (na * nb))
    return float(max(-1.0, min(1.0, cos)))


def relevance_from_cosine(cos: float) -> float:
    """
    Map a cosine similarity in [-1, 1] onto a relevance score in [0, 1].

    Args:
        cos: Cosine similarity.

    Returns:
        (1 + cos) / 2, clamped to [0, 1].
    """
    return clamp01((1.0 + float(cos)) / 2.0)
