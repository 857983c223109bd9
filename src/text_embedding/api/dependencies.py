"""FastAPI dependency injection helpers.

Extracts shared resources from ``app.state`` so route handlers can
declare them via ``Depends()``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request  # noqa: TCH002 (runtime: FastAPI dependency injection)

if TYPE_CHECKING:
    from text_embedding.embedding import TextEmbedding


def get_embedder(request: Request) -> TextEmbedding:
    """Return the loaded embedder, or 503 while no model is loaded."""
    embedder = getattr(request.app.state, "embedder", None)
    if embedder is None:
        raise HTTPException(status_code=503, detail="Model not loaded")
    return embedder  # type: ignore[no-any-return]
