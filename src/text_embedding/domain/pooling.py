"""Pooling of model outputs into one vector per input.

Dispatches on tensor rank: rank 2 outputs are already pooled and pass
through, rank 3 outputs are reduced along the token axis.
"""

from __future__ import annotations

import numpy as np

from text_embedding.domain.errors import NumericEdgeCaseError, ShapeError, UnsupportedShapeError
from text_embedding.domain.models import Pooling


def cls_pool(token_embeddings: np.ndarray) -> np.ndarray:
    """Take the first token of every row: ``(M, L, H) -> (M, H)``."""
    return token_embeddings[:, 0, :]


def mean_pool(token_embeddings: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
    """Average token vectors over the positions where the mask is set.

    Masked positions are excluded from both the sum and the divisor. Rows
    whose mask is entirely zero raise NumericEdgeCaseError.
    """
    rows, seq_len = token_embeddings.shape[:2]
    if attention_mask.shape != (rows, seq_len):
        msg = (
            f"attention mask shape {attention_mask.shape} does not match "
            f"token embeddings shape {token_embeddings.shape}"
        )
        raise ShapeError(msg)

    mask = attention_mask.astype(token_embeddings.dtype)
    counts = mask.sum(axis=1)
    empty_rows = np.flatnonzero(counts == 0)
    if empty_rows.size:
        raise NumericEdgeCaseError(empty_rows.tolist())

    summed = (token_embeddings * mask[:, :, np.newaxis]).sum(axis=1)
    return summed / counts[:, np.newaxis]


def pool(
    tensor: np.ndarray,
    attention_mask: np.ndarray,
    pooling: Pooling | None = None,
) -> np.ndarray:
    """Reduce *tensor* to a ``(M, H)`` matrix.

    - rank 2: rows are returned as-is, *pooling* is ignored
    - rank 3: ``MEAN`` uses the masked mean; ``CLS``, ``NONE`` and ``None``
      take token 0
    - any other rank: UnsupportedShapeError
    """
    if tensor.ndim == 2:
        return tensor
    if tensor.ndim == 3:
        if pooling == Pooling.MEAN:
            return mean_pool(tensor, attention_mask)
        return cls_pool(tensor)
    raise UnsupportedShapeError(tensor.shape)
