"""Unit test conftest with a stub-backed app for API testing."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from fastapi.testclient import TestClient

    from text_embedding.embedding import TextEmbedding


@pytest.fixture()
def test_client(embedder: TextEmbedding) -> TestClient:
    """FastAPI TestClient with a stub embedder (no model files needed)."""
    from fastapi import FastAPI
    from fastapi.responses import ORJSONResponse
    from fastapi.testclient import TestClient as _TestClient

    from text_embedding.api.middleware import register_middleware
    from text_embedding.api.routes.embeddings import router as embeddings_router
    from text_embedding.api.routes.health import router as health_router
    from text_embedding.settings import Settings

    app = FastAPI(default_response_class=ORJSONResponse)
    register_middleware(app)
    app.include_router(embeddings_router, prefix="/v1")
    app.include_router(health_router, prefix="/v1")

    # Wire stubs into app state
    app.state.settings = Settings()
    app.state.embedder = embedder

    return _TestClient(app)
