"""Request ID middleware for log correlation.

Injects a unique X-Request-ID into every incoming request and binds it,
together with the session id from the URL when present, to the structlog
context. A client-supplied X-Request-ID header is reused.

Usage:
    from formrelay.middleware.request_id import init_request_id_middleware
    init_request_id_middleware(app)
"""
from __future__ import annotations

import uuid

import structlog
from flask import Flask, g, request


def init_request_id_middleware(app: Flask) -> None:
    """Register before/after hooks for request ID tracing.

    Args:
        app: Flask application instance.
    """
    logger = structlog.get_logger(__name__)

    @app.before_request
    def inject_request_id() -> None:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        g.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.path,
        )
        session_id = (request.view_args or {}).get("session_id")
        if session_id is not None:
            structlog.contextvars.bind_contextvars(session_id=session_id)

        logger.debug("request_started")

    @app.after_request
    def attach_request_id(response):
        response.headers["X-Request-ID"] = g.get("request_id", "unknown")
        logger.debug("request_completed", status=response.status_code)
        return response
