"""Tokenizer port interface.

The ``tokenizers`` adapter implements this protocol.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from text_embedding.domain.models import EncodedSequence


class Tokenizer(Protocol):
    """Protocol for batch text encoding."""

    def encode_batch(
        self,
        texts: Sequence[str],
        add_special_tokens: bool,
    ) -> list[EncodedSequence]:
        """Encode *texts* into equal-length sequences, one per text.

        Raises TokenizationError if any text cannot be encoded.
        """
        ...
