"""Global Flask error handlers for consistent JSON error responses.

Registers handlers for standard HTTP errors and custom FormRelayError
exceptions, ensuring the API always returns:
    { "success": false, "error": { "message": "...", "code": <int> } }

Request failures additionally carry their kind:
    { "success": false, "error": { "message": "...", "code": 410, "kind": "session_ended" } }

Usage:
    from formrelay.middleware.error_handlers import register_error_handlers
    register_error_handlers(app)
"""
from __future__ import annotations

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

import structlog

from formrelay.models.responses import ErrorResponse
from formrelay.utils.exceptions import FormRelayError, FormRequestError

logger = structlog.get_logger(__name__)


def _error_response(message: str, code: int, **extra):
    """Create a standardized JSON error response.

    Args:
        message: Human-readable error message.
        code: HTTP status code.
        **extra: Additional keys merged into the error object.

    Returns:
        Tuple of (response, status_code).
    """
    body = ErrorResponse(error={"message": message, "code": code, **extra})
    return jsonify(body.model_dump()), code


def register_error_handlers(app: Flask) -> None:
    """Register global error handlers on the Flask app.

    Args:
        app: Flask application instance.
    """

    # ── Standard HTTP Errors ──────────────────────────────────────────

    @app.errorhandler(404)
    def not_found(e):
        return _error_response("Not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return _error_response("Method not allowed", 405)

    @app.errorhandler(500)
    def internal_error(e):
        logger.error("unhandled_server_error", error=str(e), exc_info=True)
        return _error_response("Internal server error", 500)

    # ── Application Errors ────────────────────────────────────────────

    @app.errorhandler(FormRequestError)
    def handle_request_error(e: FormRequestError):
        logger.info("form_request_error", kind=e.kind.value, status_code=e.status_code)
        return _error_response(e.message, e.status_code, kind=e.kind.value)

    @app.errorhandler(FormRelayError)
    def handle_relay_error(e: FormRelayError):
        """Handle every other FormRelayError."""
        logger.warning(
            "form_relay_error",
            error=e.message,
            error_type=type(e).__name__,
            status_code=e.status_code,
        )
        return _error_response(e.message, e.status_code)

    # ── Catch-all for unexpected Werkzeug HTTP exceptions ─────────────

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        return _error_response(e.description or "Unknown error", e.code or 500)

    # ── Catch-all for truly unhandled exceptions ──────────────────────

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        """Last resort handler, including internal invariant violations."""
        logger.error(
            "unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return _error_response("An unexpected error occurred", 500)
