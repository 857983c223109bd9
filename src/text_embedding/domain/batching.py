"""Batch planning and input tensor construction.

Pure Python + numpy. Splits the ordered input texts into contiguous chunks
and flattens a chunk's encodings into the row-major int64 tensors the
inference engine expects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import numpy as np

from text_embedding.domain.errors import ShapeError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from text_embedding.domain.models import EncodedSequence

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 256

# Engine input names
INPUT_IDS = "input_ids"
ATTENTION_MASK = "attention_mask"
TOKEN_TYPE_IDS = "token_type_ids"


def plan_batches(texts: Sequence[T], batch_size: int = DEFAULT_BATCH_SIZE) -> list[list[T]]:
    """Partition *texts* into ``ceil(N / batch_size)`` contiguous chunks.

    Concatenating the chunks in order reproduces *texts* exactly. An empty
    input yields no chunks.
    """
    if batch_size < 1:
        msg = f"batch_size must be >= 1, got {batch_size}"
        raise ValueError(msg)
    return [list(texts[start : start + batch_size]) for start in range(0, len(texts), batch_size)]


@dataclass(frozen=True, slots=True)
class BatchTensors:
    """The three ``(batch, seq_len)`` int64 tensors built for one chunk."""

    input_ids: np.ndarray
    attention_mask: np.ndarray
    token_type_ids: np.ndarray

    @property
    def shape(self) -> tuple[int, int]:
        rows, seq_len = self.input_ids.shape
        return rows, seq_len

    def as_session_inputs(self, include_token_type_ids: bool) -> dict[str, np.ndarray]:
        """Name the tensors for the engine.

        ``token_type_ids`` is only sent when the model graph declares it.
        """
        inputs = {
            INPUT_IDS: self.input_ids,
            ATTENTION_MASK: self.attention_mask,
        }
        if include_token_type_ids:
            inputs[TOKEN_TYPE_IDS] = self.token_type_ids
        return inputs


def build_tensors(encodings: Sequence[EncodedSequence]) -> BatchTensors:
    """Flatten *encodings* into three ``(M, L)`` int64 tensors.

    Raises ShapeError when the chunk is empty, when a sequence's ids, mask
    and type ids differ in length, or when sequences differ from each other.
    """
    if not encodings:
        raise ShapeError("cannot build tensors for an empty batch")

    seq_len = len(encodings[0])
    for row, encoding in enumerate(encodings):
        if not encoding.is_consistent:
            msg = (
                f"row {row} has ids/mask/type_ids of lengths "
                f"{len(encoding.ids)}/{len(encoding.attention_mask)}/{len(encoding.type_ids)}"
            )
            raise ShapeError(msg)
        if len(encoding) != seq_len:
            msg = f"row {row} has length {len(encoding)}, expected {seq_len}"
            raise ShapeError(msg)

    shape = (len(encodings), seq_len)
    return BatchTensors(
        input_ids=_stack([e.ids for e in encodings], shape),
        attention_mask=_stack([e.attention_mask for e in encodings], shape),
        token_type_ids=_stack([e.type_ids for e in encodings], shape),
    )


def _stack(rows: list[list[int]], shape: tuple[int, int]) -> np.ndarray:
    flat = np.fromiter(
        (value for row in rows for value in row),
        dtype=np.int64,
        count=shape[0] * shape[1],
    )
    return flat.reshape(shape)
