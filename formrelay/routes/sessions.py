"""Sessions blueprint — the HTTP transport used by remote clients.

Routes:
    POST   /sessions/<sid>                               → session started
    DELETE /sessions/<sid>                               → session ended, pending requests cancelled
    GET    /sessions/<sid>/requests                      → drain queued requests
    POST   /sessions/<sid>/requests/<rid>/reply          → answer one request
"""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from formrelay.models.requests import ReplyRequest
from formrelay.models.responses import ErrorResponse, OutboundRequest, PollResponse, ReplyResponse, SessionResponse
from formrelay.services.request_broker import ReplyOutcome
from formrelay.utils.exceptions import ErrorKind, FormRequestError

sessions_bp = Blueprint("sessions", __name__, url_prefix="/sessions")


def _error(message: str, code: int):
    body = ErrorResponse(error={"message": message, "code": code})
    return jsonify(body.model_dump()), code


@sessions_bp.route("/<session_id>", methods=["POST"])
def start_session(session_id: str):
    """Session-start notification from the host.

    Response JSON:
        { "success": true, "session_id": "abc", "started": true }
    """
    registry = current_app.config["SESSION_REGISTRY"]
    started = registry.start_session(session_id)
    body = SessionResponse(session_id=session_id, started=started)
    return jsonify(body.model_dump(exclude_none=True)), 201 if started else 200


@sessions_bp.route("/<session_id>", methods=["DELETE"])
def end_session(session_id: str):
    """Session-end notification. Cancels every pending request of the session.

    Response JSON:
        { "success": true, "session_id": "abc", "cancelled": 2 }
    """
    broker = current_app.config["BROKER"]
    cancelled = broker.end_session(session_id)

    body = SessionResponse(session_id=session_id, cancelled=cancelled)
    return jsonify(body.model_dump(exclude_none=True))


@sessions_bp.route("/<session_id>/requests", methods=["GET"])
def poll_requests(session_id: str):
    """Hand every queued request to the polling client, oldest first."""
    registry = current_app.config["SESSION_REGISTRY"]
    transport = current_app.config["TRANSPORT"]

    if not registry.is_live(session_id):
        raise FormRequestError(ErrorKind.SESSION_ENDED)

    drained = [OutboundRequest(**envelope) for envelope in transport.drain(session_id)]
    return jsonify(PollResponse(session_id=session_id, requests=drained).model_dump())


@sessions_bp.route("/<session_id>/requests/<int:request_id>/reply", methods=["POST"])
def post_reply(session_id: str, request_id: int):
    """Deliver the client's raw answer to a request.

    Request JSON:
        { "response": [true, "Bob"] }     // null declines the request

    Response JSON:
        { "success": true, "outcome": "resolved" }
    """
    data = request.get_json(silent=True)
    if data is None:
        return _error("Invalid JSON body", 400)

    try:
        reply = ReplyRequest.model_validate(data)
    except ValidationError as e:
        errors = e.errors()
        message = errors[0].get("msg", "Validation error") if errors else "Invalid request"
        return _error(message, 422)

    broker = current_app.config["BROKER"]
    outcome = broker.deliver_reply(session_id, request_id, reply.response)

    if outcome is ReplyOutcome.INVALID:
        return _error(f"Reply to request {request_id} does not match the request", 422)

    return jsonify(ReplyResponse(outcome=outcome.value).model_dump())
