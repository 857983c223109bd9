"""Health check endpoint.

GET /v1/health: reports whether the model is loaded.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Request

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])

# Reported by /v1/health and the OpenAPI schema
VERSION = "0.1.0"


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Service health check.

    Returns "healthy" once the session and tokenizer are loaded and
    "unhealthy" otherwise.
    """
    embedder = getattr(request.app.state, "embedder", None)
    model_loaded = embedder is not None
    if not model_loaded:
        logger.warning("health_check_model_missing")

    return {
        "status": "healthy" if model_loaded else "unhealthy",
        "model_loaded": model_loaded,
        "version": VERSION,
    }
