"""ONNX Runtime inference adapter.

Implements the ``InferenceSession`` protocol on top of
``onnxruntime.InferenceSession``. Sessions are built with full graph
optimisation and, unless told otherwise, one intra-op thread per CPU.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

import onnxruntime as ort
import structlog

from text_embedding.domain.errors import InferenceError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    import numpy as np

log = structlog.get_logger(__name__)

DEFAULT_EXECUTION_PROVIDERS = ("CPUExecutionProvider",)


def _session_options(intra_op_threads: int | None) -> ort.SessionOptions:
    options = ort.SessionOptions()
    options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    options.intra_op_num_threads = intra_op_threads or os.cpu_count() or 1
    return options


class OnnxInferenceSession:
    """InferenceSession implementation backed by ONNX Runtime.

    Satisfies the ``text_embedding.ports.inference.InferenceSession``
    protocol. ONNX Runtime allows concurrent ``run`` calls on one session,
    so a single instance is shared by every pipeline worker.
    """

    def __init__(self, session: ort.InferenceSession) -> None:
        self._session = session
        self._input_names = tuple(i.name for i in session.get_inputs())
        self._output_names = tuple(o.name for o in session.get_outputs())

    # -- lifecycle ----------------------------------------------------------

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        execution_providers: Sequence[str] = DEFAULT_EXECUTION_PROVIDERS,
        intra_op_threads: int | None = None,
    ) -> OnnxInferenceSession:
        """Load a model graph from an ``.onnx`` file."""
        session = ort.InferenceSession(
            str(Path(path)),
            sess_options=_session_options(intra_op_threads),
            providers=list(execution_providers),
        )
        log.info("session_loaded", source=str(path), providers=list(execution_providers))
        return cls(session)

    @classmethod
    def from_bytes(
        cls,
        model: bytes,
        execution_providers: Sequence[str] = DEFAULT_EXECUTION_PROVIDERS,
        intra_op_threads: int | None = None,
    ) -> OnnxInferenceSession:
        """Load a model graph from the serialized bytes of an ``.onnx`` file."""
        session = ort.InferenceSession(
            model,
            sess_options=_session_options(intra_op_threads),
            providers=list(execution_providers),
        )
        log.info("session_loaded", source="memory", size=len(model))
        return cls(session)

    # -- protocol -----------------------------------------------------------

    @property
    def input_names(self) -> tuple[str, ...]:
        return self._input_names

    @property
    def output_names(self) -> tuple[str, ...]:
        return self._output_names

    def run(self, inputs: Mapping[str, np.ndarray]) -> dict[str, np.ndarray]:
        """Run the graph and return every output by name, in graph order."""
        try:
            values = self._session.run(list(self._output_names), dict(inputs))
        except Exception as exc:
            raise InferenceError(f"onnxruntime run failed: {exc}") from exc
        if len(values) != len(self._output_names):
            msg = f"expected {len(self._output_names)} outputs, engine returned {len(values)}"
            raise InferenceError(msg)
        return dict(zip(self._output_names, values, strict=True))
