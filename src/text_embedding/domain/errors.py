"""Error taxonomy for the embedding pipeline.

Every error carries the pipeline ``stage`` that raised it and, once the
pipeline driver has seen it, the index of the batch that failed. Errors are
never retried: a single failing batch aborts the whole call.
"""

from __future__ import annotations

from collections.abc import Sequence


class EmbeddingError(Exception):
    """Base class for every error raised by the embedding pipeline."""

    stage = "pipeline"

    def __init__(self, message: str, *, batch_index: int | None = None) -> None:
        self.message = message
        self.batch_index = batch_index
        super().__init__(message)

    def __str__(self) -> str:
        if self.batch_index is None:
            return f"[{self.stage}] {self.message}"
        return f"[{self.stage}] batch {self.batch_index}: {self.message}"


class TokenizationError(EmbeddingError):
    """An input text could not be encoded by the tokenizer."""

    stage = "tokenize"


class ShapeError(EmbeddingError):
    """Tensor shapes violate a pipeline invariant. Indicates a bug."""

    stage = "build_tensors"


class InferenceError(EmbeddingError):
    """The inference engine failed to produce a complete output set."""

    stage = "inference"


class OutputNotFoundError(EmbeddingError):
    """No output key in the precedence list matched the model outputs."""

    stage = "select_output"

    def __init__(
        self,
        available: Sequence[str],
        *,
        batch_index: int | None = None,
    ) -> None:
        self.available = list(available)
        super().__init__(
            f"no suitable output found; available outputs: {self.available}",
            batch_index=batch_index,
        )


class UnsupportedShapeError(EmbeddingError):
    """Pooling received a tensor that is neither rank 2 nor rank 3."""

    stage = "pool"

    def __init__(
        self,
        shape: tuple[int, ...],
        *,
        batch_index: int | None = None,
    ) -> None:
        self.shape = tuple(shape)
        super().__init__(
            f"invalid output shape {self.shape}; expected a 2D or 3D tensor",
            batch_index=batch_index,
        )


class NumericEdgeCaseError(EmbeddingError):
    """Mean pooling hit rows whose attention mask is entirely zero."""

    stage = "pool"

    def __init__(
        self,
        rows: Sequence[int],
        *,
        batch_index: int | None = None,
    ) -> None:
        self.rows = list(rows)
        super().__init__(
            f"attention mask is all zero for rows {self.rows}; mean pooling is undefined",
            batch_index=batch_index,
        )
