"""Model output selection and export.

A model may expose several named outputs (``last_hidden_state``,
``sentence_embedding``, ...). An ordered list of ``OutputKey`` rules picks
which one to pool: the first rule that matches wins.

``SingleBatchOutput`` holds one batch's raw engine outputs together with its
attention mask; ``EmbeddingOutput`` holds all batches of a call in input
order and exports them through a transformer callable.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias, TypeVar

from text_embedding.domain.errors import OutputNotFoundError
from text_embedding.domain.normalize import normalize_rows
from text_embedding.domain.pooling import pool

if TYPE_CHECKING:
    import numpy as np

    from text_embedding.domain.models import Embedding, Pooling

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Output keys
# ---------------------------------------------------------------------------


class OutputKeyKind(enum.StrEnum):
    ONLY_ONE = "only_one"
    BY_NAME = "by_name"
    BY_ORDER = "by_order"


@dataclass(frozen=True, slots=True)
class OutputKey:
    """One rule of an output precedence list."""

    kind: OutputKeyKind
    name: str | None = None
    index: int | None = None

    @classmethod
    def only_one(cls) -> OutputKey:
        """Match when the model has exactly one output."""
        return cls(OutputKeyKind.ONLY_ONE)

    @classmethod
    def by_name(cls, name: str) -> OutputKey:
        """Match the output with exactly this name."""
        return cls(OutputKeyKind.BY_NAME, name=name)

    @classmethod
    def by_order(cls, index: int) -> OutputKey:
        """Match the output at this position in engine order."""
        if index < 0:
            msg = f"output index must be >= 0, got {index}"
            raise ValueError(msg)
        return cls(OutputKeyKind.BY_ORDER, index=index)

    def find(self, outputs: dict[str, np.ndarray]) -> np.ndarray | None:
        """Return the tensor this rule selects from *outputs*, or None."""
        if self.kind == OutputKeyKind.ONLY_ONE:
            if len(outputs) == 1:
                return next(iter(outputs.values()))
            return None
        if self.kind == OutputKeyKind.BY_NAME:
            return outputs.get(self.name)  # type: ignore[arg-type]
        if self.index is not None and self.index < len(outputs):
            return list(outputs.values())[self.index]
        return None

    def __str__(self) -> str:
        if self.kind == OutputKeyKind.BY_NAME:
            return self.name or ""
        if self.kind == OutputKeyKind.BY_ORDER:
            return f"index:{self.index}"
        return self.kind.value


OutputPrecedence: TypeAlias = Sequence[OutputKey]

DEFAULT_OUTPUT_PRECEDENCE: tuple[OutputKey, ...] = (
    OutputKey.only_one(),
    OutputKey.by_name("last_hidden_state"),
    OutputKey.by_name("sentence_embedding"),
)


def parse_output_key(value: str) -> OutputKey:
    """Parse a configuration string into an OutputKey.

    ``"only_one"`` is the sole-output rule, ``"index:<n>"`` selects by
    position, anything else is an exact output name.
    """
    if value == OutputKeyKind.ONLY_ONE.value:
        return OutputKey.only_one()
    if value.startswith("index:"):
        return OutputKey.by_order(int(value.removeprefix("index:")))
    return OutputKey.by_name(value)


def parse_output_precedence(values: Iterable[str]) -> tuple[OutputKey, ...]:
    return tuple(parse_output_key(v) for v in values)


def select_output(outputs: dict[str, np.ndarray], precedence: OutputPrecedence) -> np.ndarray:
    """Return the tensor of the first rule in *precedence* that matches.

    Raises OutputNotFoundError when no rule matches.
    """
    for key in precedence:
        tensor = key.find(outputs)
        if tensor is not None:
            return tensor
    raise OutputNotFoundError(list(outputs))


# ---------------------------------------------------------------------------
# Batch outputs
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class SingleBatchOutput:
    """Raw engine outputs of one batch plus the mask needed for pooling."""

    outputs: dict[str, np.ndarray]
    attention_mask: np.ndarray

    def select_output(self, precedence: OutputPrecedence) -> np.ndarray:
        return select_output(self.outputs, precedence)

    def select_and_pool_output(
        self,
        precedence: OutputPrecedence,
        pooling: Pooling | None = None,
    ) -> np.ndarray:
        """Select the output tensor and pool it to one row per input."""
        return pool(self.select_output(precedence), self.attention_mask, pooling)


BatchTransformer: TypeAlias = Callable[[Sequence[SingleBatchOutput]], T]


class EmbeddingOutput:
    """All batch outputs of one ``transform`` call, in input order."""

    def __init__(self, batches: list[SingleBatchOutput]) -> None:
        self._batches = batches

    def __len__(self) -> int:
        return len(self._batches)

    def into_raw(self) -> list[SingleBatchOutput]:
        """Return the per-batch outputs for custom post-processing."""
        return self._batches

    def export_with_transformer(self, transformer: BatchTransformer[T]) -> T:
        """Apply *transformer* to the batch outputs and return its result."""
        return transformer(self._batches)


def transformer_with_precedence(
    precedence: OutputPrecedence = DEFAULT_OUTPUT_PRECEDENCE,
    pooling: Pooling | None = None,
) -> BatchTransformer[list[Embedding]]:
    """Build the default transformer: select, pool and normalize every batch."""

    def transform(batches: Sequence[SingleBatchOutput]) -> list[Embedding]:
        embeddings: list[Embedding] = []
        for batch in batches:
            pooled = batch.select_and_pool_output(precedence, pooling)
            embeddings.extend(normalize_rows(pooled).tolist())
        return embeddings

    return transform
