"""Health check endpoint.

Exposes GET /health with the relay's live session and pending request counts.

Response format:
    {
        "status": "healthy",
        "version": "1.0.0",
        "sessions": 3,
        "pending_requests": 5
    }
"""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify

health_bp = Blueprint("health", __name__)

APP_VERSION = "1.0.0"


@health_bp.route("/health", methods=["GET"])
def health_check():
    """Application health check endpoint. Always 200 while the app serves."""
    registry = current_app.config["SESSION_REGISTRY"]

    return jsonify({
        "status": "healthy",
        "version": APP_VERSION,
        "sessions": len(registry.session_ids),
        "pending_requests": registry.total_pending,
    }), 200
