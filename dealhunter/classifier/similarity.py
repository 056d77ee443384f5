"""Cosine similarity between embedding vectors."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from dealhunter.errors import DimensionMismatchError

Vector = Sequence[float] | np.ndarray


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Return dot(a, b) / (|a| * |b|), or 0.0 when either vector has zero norm.

    Raises DimensionMismatchError when the vectors differ in length.
    """
    left = np.asarray(a, dtype=np.float64).ravel()
    right = np.asarray(b, dtype=np.float64).ravel()
    if left.shape[0] != right.shape[0]:
        raise DimensionMismatchError(left.shape[0], right.shape[0])

    denominator = float(np.linalg.norm(left)) * float(np.linalg.norm(right))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(left, right) / denominator)
