"""L2 normalization of embedding vectors.

A zero-norm vector has no direction and is returned unchanged.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """Divide every row of *matrix* by its Euclidean norm.

    Float inputs keep their precision; integer inputs are promoted to float.
    """
    values = np.asarray(matrix)
    values = values.astype(np.result_type(values.dtype, np.float32), copy=False)
    norms = np.linalg.norm(values, axis=1, keepdims=True)
    safe = np.where(norms == 0.0, 1.0, norms)
    return values / safe


def normalize(vector: Sequence[float]) -> list[float]:
    """L2-normalize a single vector."""
    values = np.asarray(vector)
    values = values.astype(np.result_type(values.dtype, np.float32), copy=False)
    norm = float(np.linalg.norm(values))
    if norm == 0.0:
        return values.tolist()
    return (values / norm).tolist()
