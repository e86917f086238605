"""
Cosine similarity and relevance scoring.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from ..errors import DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine of the angle between *a* and *b*.

    Zero-norm vectors score 0. Vectors of different length raise
    ``DimensionMismatchError``.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    left = np.asarray(a, dtype=np.float64)
    right = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(left))
    norm_b = float(np.linalg.norm(right))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    similarity = float(np.dot(left, right) / (norm_a * norm_b))
    # Rounding can push identical vectors a hair past 1.
    return max(-1.0, min(1.0, similarity))


def relevance_score(similarity: float) -> float:
    """Map cosine similarity from [-1, 1] onto a [0, 1] relevance score."""
    return max(0.0, min(1.0, (similarity + 1.0) / 2.0))
