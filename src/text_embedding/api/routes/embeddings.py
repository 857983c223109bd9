"""Embedding endpoint.

POST /v1/embeddings: embed a list of texts, returned in input order.

The pipeline is CPU-bound and fans out to its own worker threads, so the
call runs in the threadpool to keep the event loop free.
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from text_embedding.api.dependencies import get_embedder
from text_embedding.embedding import TextEmbedding  # noqa: TCH001 (runtime: Depends())

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["embeddings"])


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class EmbedRequest(BaseModel):
    """Texts to embed and an optional per-request batch size."""

    texts: list[str]
    batch_size: int | None = Field(default=None, ge=1)


class EmbedResponse(BaseModel):
    """One embedding per input text, in input order."""

    embeddings: list[list[float]]
    count: int
    dimension: int


EmbedderDep = Annotated[TextEmbedding, Depends(get_embedder)]


# ---------------------------------------------------------------------------
# POST /v1/embeddings
# ---------------------------------------------------------------------------


@router.post("/embeddings", response_model=EmbedResponse)
async def create_embeddings(body: EmbedRequest, embedder: EmbedderDep) -> EmbedResponse:
    """Embed ``body.texts``.

    Any batch failure fails the whole request; no partial results are
    returned.
    """
    embeddings = await run_in_threadpool(embedder.embed, body.texts, body.batch_size)
    dimension = len(embeddings[0]) if embeddings else 0

    logger.info("embeddings_served", count=len(embeddings), dimension=dimension)
    return EmbedResponse(embeddings=embeddings, count=len(embeddings), dimension=dimension)
