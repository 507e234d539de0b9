"""Form Relay — awaitable UI requests to remote clients.

The `create_app()` factory builds the Flask host: it wires the session
registry, the outbox transport and the request broker, and exposes the
HTTP routes remote clients use to receive requests and post replies.

Application code awaits results through `FormRelay` (available as
`app.config["FORM_RELAY"]`), e.g.:

    relay = app.config["FORM_RELAY"]
    answers = await relay.send_form(session_id, "Sign up", [FormControl.input("Name")])
"""
from __future__ import annotations

import structlog
from flask import Flask
from flask_cors import CORS

from formrelay.config import get_settings, Settings
from formrelay.utils.logger import setup_logging
from formrelay.middleware.request_id import init_request_id_middleware
from formrelay.middleware.error_handlers import register_error_handlers


def create_app(settings: Settings | None = None) -> Flask:
    """Application factory pattern.

    Creates and configures the Flask application with:
    - Pydantic-based configuration loading
    - Structured logging (structlog)
    - Request ID middleware
    - Global error handlers
    - CORS configuration
    - Relay services (registry, transport, broker, FormRelay)
    - Blueprint registration (health, sessions)

    Args:
        settings: Optional settings override (defaults to `get_settings()`).

    Returns:
        Configured Flask application instance.
    """
    settings = settings or get_settings()

    # ── Logging (must be first so all subsequent logs are formatted) ──
    setup_logging(log_level=settings.LOG_LEVEL, log_format=settings.LOG_FORMAT)
    logger = structlog.get_logger(__name__)

    # ── Flask app ─────────────────────────────────────────────────────
    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.SECRET_KEY
    app.config["FLASK_DEBUG"] = settings.FLASK_DEBUG
    app.config["SETTINGS"] = settings

    # ── Middleware ─────────────────────────────────────────────────────
    init_request_id_middleware(app)
    register_error_handlers(app)

    # ── CORS ──────────────────────────────────────────────────────────
    CORS(app, resources={
        r"/sessions/*": {"origins": "*"},
        r"/health": {"origins": "*"},
    })

    # ── Services ──────────────────────────────────────────────────────
    _init_services(app, settings)

    # ── Blueprints ────────────────────────────────────────────────────
    from formrelay.routes.health import health_bp
    from formrelay.routes.sessions import sessions_bp
    app.register_blueprint(health_bp)
    app.register_blueprint(sessions_bp)

    logger.info(
        "app_started",
        env=settings.FLASK_ENV,
        log_level=settings.LOG_LEVEL,
        outbox_max_size=settings.OUTBOX_MAX_SIZE,
    )

    return app


def _init_services(app: Flask, settings: Settings) -> None:
    """Create the relay services and store them on `app.config`.

    One registry is created per app and shared by everything that issues
    requests; it lives as long as the app.

    Args:
        app: Flask application instance.
        settings: Application settings.
    """
    from formrelay.services.request_broker import RequestBroker
    from formrelay.services.response_processor import ResponseProcessor
    from formrelay.services.session_registry import SessionRegistry
    from formrelay.services.transport import OutboxTransport
    from formrelay.services.windows import FormRelay

    logger = structlog.get_logger(__name__)

    registry = SessionRegistry()
    transport = OutboxTransport(max_size=settings.OUTBOX_MAX_SIZE)
    broker = RequestBroker(registry, transport, ResponseProcessor())

    app.config["SESSION_REGISTRY"] = registry
    app.config["TRANSPORT"] = transport
    app.config["BROKER"] = broker
    app.config["FORM_RELAY"] = FormRelay(broker, settings)

    logger.info("services_initialized")
