"""Structured logging configuration using structlog.

Provides centralized logging setup with:
- JSON output in production, colored console output in development
- Automatic request_id / session_id binding via contextvars
- Timestamp and log level on every log line
- Exception formatting

Usage:
    from formrelay.utils.logger import setup_logging

    setup_logging(log_level="INFO", log_format="json")

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("form_request_sent", session_id="s-1", form_request_id=3)
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import structlog


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structlog for the entire application.

    Args:
        log_level: Logging level — DEBUG, INFO, WARNING, ERROR, CRITICAL.
        log_format: Output format — 'json' for production, 'console' for dev.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,       # picks up request_id, session_id
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Werkzeug and httpx log through stdlib
    logging.basicConfig(format="%(message)s", level=level)


@contextmanager
def session_log_context(session_id: str | int, **extra) -> Iterator[None]:
    """Bind a session id (plus any extra keys) to every log line in the block.

    Bindings are restored on exit, so nesting inside an HTTP request keeps
    the outer request_id intact.
    """
    with structlog.contextvars.bound_contextvars(session_id=session_id, **extra):
        yield
