"""Cosine similarity helpers shared by the vector stores."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from notelens.errors import DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatchError: The vectors differ in length.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Vectorized cosine of *query* against each row of *matrix*.

    Rows (or a query) with zero magnitude score 0.0.
    """
    q = np.asarray(query, dtype=np.float64)
    if matrix.size == 0:
        return np.zeros(matrix.shape[0], dtype=np.float64)
    if matrix.shape[1] != q.shape[0]:
        raise DimensionMismatchError(matrix.shape[1], q.shape[0])

    m = matrix.astype(np.float64, copy=False)
    q_norm = float(np.linalg.norm(q))
    row_norms = np.linalg.norm(m, axis=1)
    if q_norm == 0.0:
        return np.zeros(m.shape[0], dtype=np.float64)

    denom = row_norms * q_norm
    dots = m @ q
    scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
    return np.clip(scores, -1.0, 1.0)
