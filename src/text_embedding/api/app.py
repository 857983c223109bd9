"""FastAPI application factory.

Creates and configures the embedding API with lifespan management for the
model session and tokenizer.

Run with ``uvicorn text_embedding.api.app:create_app --factory``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from text_embedding.api.middleware import register_middleware
from text_embedding.api.routes.embeddings import router as embeddings_router
from text_embedding.api.routes.health import VERSION
from text_embedding.api.routes.health import router as health_router
from text_embedding.embedding import TextEmbedding
from text_embedding.log_config import configure_logging
from text_embedding.settings import Settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Load the model once and share it across requests."""
    settings: Settings = app.state.settings

    # -- Startup: load session + tokenizer ---------------------------------
    embedder = TextEmbedding.from_settings(settings)
    app.state.embedder = embedder

    logger.info(
        "app_started",
        model_dir=settings.onnx.directory,
        batch_size=embedder.batch_size,
        workers=embedder.num_workers,
        pooling=str(embedder.pooling) if embedder.pooling else None,
    )

    yield

    # -- Shutdown ----------------------------------------------------------
    app.state.embedder = None
    logger.info("app_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and return the configured FastAPI application."""
    settings = settings or Settings()
    configure_logging(settings.log_level, settings.log_format, service_name=settings.app_name)

    app = FastAPI(
        title="Text Embedding API",
        description="Batched transformer text embeddings on ONNX Runtime",
        version=VERSION,
        debug=settings.debug,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.settings = settings

    register_middleware(app)

    app.include_router(embeddings_router, prefix="/v1")
    app.include_router(health_router, prefix="/v1")

    return app
