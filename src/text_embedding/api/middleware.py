"""API middleware: pipeline error mapping and request timing.

Pipeline errors become structured JSON bodies naming the failing stage and
batch. Every request is timed, tagged with a request id and logged.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING, Any

import structlog
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from text_embedding.domain.errors import EmbeddingError, TokenizationError

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
TIMING_HEADER = "X-Request-Time-Ms"


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _status_for(exc: EmbeddingError) -> int:
    # Unencodable input is a client problem; every later stage is ours
    return 422 if isinstance(exc, TokenizationError) else 500


async def _embedding_error_handler(
    request: Request,
    exc: EmbeddingError,
) -> ORJSONResponse:
    """Map a pipeline error to ``{detail, type, stage, batch_index}``."""
    status_code = _status_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "embedding_failed",
        path=request.url.path,
        stage=exc.stage,
        batch_index=exc.batch_index,
        error=exc.message,
    )
    return ORJSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "type": type(exc).__name__,
            "stage": exc.stage,
            "batch_index": exc.batch_index,
        },
    )


async def _unhandled_error_handler(
    request: Request,
    exc: Exception,
) -> ORJSONResponse:
    logger.error("unhandled_exception", path=request.url.path, exc_info=exc)
    return ORJSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__},
    )


# ---------------------------------------------------------------------------
# Request context middleware
# ---------------------------------------------------------------------------


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the log context and times the request.

    The id is taken from an incoming ``X-Request-Id`` header when present.
    Both the id and the elapsed milliseconds are echoed as response headers.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.monotonic()
        try:
            response: Response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        elapsed_ms = (time.monotonic() - start) * 1000

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[TIMING_HEADER] = f"{elapsed_ms:.1f}"
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            elapsed_ms=round(elapsed_ms, 1),
            request_id=request_id,
        )
        return response


def register_middleware(app: FastAPI) -> None:
    """Install the error handlers and the request context middleware."""
    app.add_exception_handler(EmbeddingError, _embedding_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)
    app.add_middleware(RequestContextMiddleware)
