"""Domain models for the embedding pipeline.

Plain dataclasses and enums shared by the domain modules, the ports and the
adapters. Tensors are ``numpy`` arrays; everything else is pure Python.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TypeAlias

# One L2-normalized vector per input text.
Embedding: TypeAlias = list[float]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Pooling(enum.StrEnum):
    """Reduction applied to token-level (rank 3) model outputs.

    ``NONE`` leaves the choice to the tensor rank: pre-pooled outputs pass
    through and token-level outputs fall back to the CLS token.
    """

    NONE = "none"
    MEAN = "mean"
    CLS = "cls"


class PaddingStrategy(enum.StrEnum):
    """How the tokenizer pads the sequences of one batch."""

    MAX_LENGTH = "max_length"
    LONGEST = "longest"


# ---------------------------------------------------------------------------
# Tokenizer output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EncodedSequence:
    """Token ids, attention mask and token type ids for a single text."""

    ids: list[int]
    attention_mask: list[int]
    type_ids: list[int]

    def __len__(self) -> int:
        return len(self.ids)

    @property
    def is_consistent(self) -> bool:
        return len(self.ids) == len(self.attention_mask) == len(self.type_ids)
