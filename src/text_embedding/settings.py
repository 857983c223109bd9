"""Application settings via Pydantic BaseSettings.

All configuration uses the TE_ environment variable prefix.
Centralized here to prevent hardcoded magic numbers across the codebase.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings

from text_embedding.domain.models import PaddingStrategy, Pooling


class EmbeddingSettings(BaseSettings):
    """Pipeline settings: tokenization, batching, pooling, output selection."""

    model_config = {"env_prefix": "TE_EMBED_"}

    # Tokenizer pads/truncates every sequence to this many tokens
    max_length: int = Field(default=512, ge=1)
    padding: PaddingStrategy = PaddingStrategy.MAX_LENGTH

    # Texts per inference call
    batch_size: int = Field(default=256, ge=1)

    # None infers from output rank (2D passes through, 3D takes CLS)
    pooling: Pooling | None = None

    # First match wins: "only_one", "index:<n>", or an exact output name
    output_precedence: list[str] = Field(
        default_factory=lambda: ["only_one", "last_hidden_state", "sentence_embedding"],
    )

    # Parallel batch workers; None uses the CPU count
    num_workers: int | None = Field(default=None, ge=1)


class OnnxSettings(BaseSettings):
    """Model location and ONNX Runtime session settings."""

    model_config = {"env_prefix": "TE_ONNX_"}

    # Directory holding the .onnx graph and the tokenizer files
    directory: str | None = None
    onnx_file: str = "model.onnx"

    # Passed to onnxruntime verbatim
    execution_providers: list[str] = Field(default_factory=lambda: ["CPUExecutionProvider"])

    # None uses the CPU count
    intra_op_threads: int | None = Field(default=None, ge=1)


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "TE_"}

    app_name: str = "text-embedding"
    debug: bool = False
    log_level: str = "INFO"
    # "json" for production, "console" for local development
    log_format: str = "json"

    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    onnx: OnnxSettings = Field(default_factory=OnnxSettings)
