"""Structured logging configuration.

Call ``configure_logging`` once at start-up; modules acquire loggers with
``structlog.get_logger(__name__)``. Produces JSON for machines or a console
format for local development.
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "text-embedding",
) -> None:
    """Configure stdlib logging and structlog processors."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        msg = f"unknown log level: {log_level}"
        raise ValueError(msg)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_logger_name,
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)
