"""Inference engine port interface.

Uses typing.Protocol for structural subtyping (not ABCs).
The ONNX Runtime adapter implements this protocol; tests use
deterministic stubs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    import numpy as np


class InferenceSession(Protocol):
    """Protocol for a loaded model graph that maps input tensors to output tensors."""

    @property
    def input_names(self) -> Sequence[str]:
        """Names of the inputs the model graph declares."""
        ...

    def run(self, inputs: Mapping[str, np.ndarray]) -> dict[str, np.ndarray]:
        """Execute the graph for one batch.

        Receives ``input_ids`` and ``attention_mask`` (int64, batch x seq_len)
        and ``token_type_ids`` only when declared. Returns every named output
        for the same rows, in graph order. Atomic: raises InferenceError
        instead of returning a partial result. Must be safe to call from
        several threads at once.
        """
        ...
