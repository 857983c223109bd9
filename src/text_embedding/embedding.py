"""Text embedding pipeline driver.

Splits the input into batches and runs each batch on a worker thread:
tokenize, build tensors, run inference, then (for ``embed``) select the
output, pool and normalize. Results are joined in input order. The first
failing batch aborts the call and no partial results are returned.
"""

from __future__ import annotations

import contextvars
import os
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

import structlog

from text_embedding.adapters.onnx.session import DEFAULT_EXECUTION_PROVIDERS, OnnxInferenceSession
from text_embedding.adapters.tokenizers.tokenizer import (
    DEFAULT_MAX_LENGTH,
    TokenizerFiles,
    load_tokenizer,
)
from text_embedding.domain.batching import (
    DEFAULT_BATCH_SIZE,
    TOKEN_TYPE_IDS,
    build_tensors,
    plan_batches,
)
from text_embedding.domain.errors import EmbeddingError
from text_embedding.domain.models import PaddingStrategy, Pooling
from text_embedding.domain.output import (
    DEFAULT_OUTPUT_PRECEDENCE,
    EmbeddingOutput,
    SingleBatchOutput,
    parse_output_precedence,
    transformer_with_precedence,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from text_embedding.domain.models import Embedding
    from text_embedding.domain.output import OutputPrecedence
    from text_embedding.ports.inference import InferenceSession
    from text_embedding.ports.tokenizer import Tokenizer
    from text_embedding.settings import Settings

log = structlog.get_logger(__name__)

R = TypeVar("R")


# ---------------------------------------------------------------------------
# User-defined models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserDefinedEmbeddingModel:
    """A "bring your own" model: the ONNX graph and tokenizer files as bytes."""

    onnx_file: bytes
    tokenizer_files: TokenizerFiles
    pooling: Pooling | None = None

    @classmethod
    def from_directory(
        cls,
        directory: str | Path,
        onnx_file: str = "model.onnx",
        pooling: Pooling | None = None,
    ) -> UserDefinedEmbeddingModel:
        """Read the graph and the tokenizer files from one model directory."""
        root = Path(directory)
        return cls(
            onnx_file=(root / onnx_file).read_bytes(),
            tokenizer_files=TokenizerFiles.from_directory(root),
            pooling=pooling,
        )


@dataclass(frozen=True)
class InitOptionsUserDefined:
    """Options for building a TextEmbedding from a user-defined model."""

    max_length: int = DEFAULT_MAX_LENGTH
    padding: PaddingStrategy = PaddingStrategy.MAX_LENGTH
    execution_providers: Sequence[str] = DEFAULT_EXECUTION_PROVIDERS
    intra_op_threads: int | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    num_workers: int | None = None


# ---------------------------------------------------------------------------
# TextEmbedding
# ---------------------------------------------------------------------------


class TextEmbedding:
    """Turns texts into L2-normalized embeddings with a tokenizer and an engine.

    The tokenizer and the session are shared read-only by every worker; no
    other state is shared between batches.
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        session: InferenceSession,
        pooling: Pooling | None = None,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        output_precedence: OutputPrecedence = DEFAULT_OUTPUT_PRECEDENCE,
        num_workers: int | None = None,
    ) -> None:
        if batch_size < 1:
            msg = f"batch_size must be >= 1, got {batch_size}"
            raise ValueError(msg)
        self.tokenizer = tokenizer
        self.session = session
        self.pooling = pooling
        self.batch_size = batch_size
        self.output_precedence = tuple(output_precedence)
        if num_workers is not None and num_workers < 1:
            msg = f"num_workers must be >= 1, got {num_workers}"
            raise ValueError(msg)
        self.num_workers = num_workers or os.cpu_count() or 1
        self.need_token_type_ids = TOKEN_TYPE_IDS in session.input_names

    # -- construction -------------------------------------------------------

    @classmethod
    def from_user_defined(
        cls,
        model: UserDefinedEmbeddingModel,
        options: InitOptionsUserDefined | None = None,
    ) -> TextEmbedding:
        """Build an instance from model bytes supplied by the caller."""
        options = options or InitOptionsUserDefined()
        session = OnnxInferenceSession.from_bytes(
            model.onnx_file,
            execution_providers=options.execution_providers,
            intra_op_threads=options.intra_op_threads,
        )
        tokenizer = load_tokenizer(model.tokenizer_files, options.max_length, options.padding)
        return cls(
            tokenizer,
            session,
            model.pooling,
            batch_size=options.batch_size,
            num_workers=options.num_workers,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> TextEmbedding:
        """Build an instance from the model directory named in *settings*."""
        if settings.onnx.directory is None:
            msg = "TE_ONNX_DIRECTORY is not set; no model to load"
            raise ValueError(msg)
        root = Path(settings.onnx.directory)
        session = OnnxInferenceSession.from_file(
            root / settings.onnx.onnx_file,
            execution_providers=settings.onnx.execution_providers,
            intra_op_threads=settings.onnx.intra_op_threads,
        )
        tokenizer = load_tokenizer(
            TokenizerFiles.from_directory(root),
            settings.embedding.max_length,
            settings.embedding.padding,
        )
        return cls(
            tokenizer,
            session,
            settings.embedding.pooling,
            batch_size=settings.embedding.batch_size,
            output_precedence=parse_output_precedence(settings.embedding.output_precedence),
            num_workers=settings.embedding.num_workers,
        )

    # -- pipeline -----------------------------------------------------------

    def transform(
        self,
        texts: Sequence[str],
        batch_size: int | None = None,
    ) -> EmbeddingOutput:
        """Run inference and return the raw outputs of every batch.

        Lower level than ``embed``: use ``EmbeddingOutput.into_raw`` for the
        engine tensors or ``export_with_transformer`` for custom pooling.
        """
        batches = plan_batches(texts, self.batch_size if batch_size is None else batch_size)
        return EmbeddingOutput(self._fan_out(batches, self._run_batch))

    def embed(
        self,
        texts: Sequence[str],
        batch_size: int | None = None,
        *,
        output_precedence: OutputPrecedence | None = None,
        pooling: Pooling | None = None,
    ) -> list[Embedding]:
        """Return one normalized embedding per text, in input order.

        *output_precedence* and *pooling* override the instance defaults for
        this call only.
        """
        transformer = transformer_with_precedence(
            output_precedence if output_precedence is not None else self.output_precedence,
            pooling if pooling is not None else self.pooling,
        )
        batches = plan_batches(texts, self.batch_size if batch_size is None else batch_size)
        results = self._fan_out(batches, lambda batch: transformer([self._run_batch(batch)]))
        embeddings = [embedding for result in results for embedding in result]
        log.debug("embeddings_generated", count=len(embeddings), batches=len(batches))
        return embeddings

    def _run_batch(self, batch: list[str]) -> SingleBatchOutput:
        encodings = self.tokenizer.encode_batch(batch, add_special_tokens=True)
        tensors = build_tensors(encodings)
        outputs = self.session.run(tensors.as_session_inputs(self.need_token_type_ids))
        return SingleBatchOutput(outputs=outputs, attention_mask=tensors.attention_mask)

    def _fan_out(self, batches: list[list[str]], work: Callable[[list[str]], R]) -> list[R]:
        """Apply *work* to every batch in parallel and join in batch order."""
        if not batches:
            return []
        log.debug("batches_planned", batches=len(batches), workers=self.num_workers)

        if len(batches) == 1:
            return [self._call(0, batches[0], work)]

        executor = ThreadPoolExecutor(max_workers=min(self.num_workers, len(batches)))
        try:
            # Each task runs in a copy of the caller's context so bound log
            # fields (request id, service) reach the worker threads.
            futures = [
                executor.submit(contextvars.copy_context().run, self._call, index, batch, work)
                for index, batch in enumerate(batches)
            ]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            if any(future.exception() is not None for future in done):
                for future in pending:
                    future.cancel()
                # Batches already running may still fail; report the lowest index
                wait(futures)
                for future in futures:
                    if not future.cancelled() and future.exception() is not None:
                        raise future.exception()  # type: ignore[misc]
            return [future.result() for future in futures]
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    @staticmethod
    def _call(index: int, batch: list[str], work: Callable[[list[str]], R]) -> R:
        try:
            return work(batch)
        except EmbeddingError as exc:
            exc.batch_index = index
            log.error(
                "batch_failed",
                batch_index=index,
                batch_size=len(batch),
                stage=exc.stage,
                error=exc.message,
            )
            raise
