"""Custom exception hierarchy for the form relay.

All recoverable, application-specific exceptions inherit from FormRelayError,
enabling uniform error handling in the global error handlers.

Hierarchy:
    FormRelayError (base)
    ├── FormRequestError          — A request did not produce a result
    │                               (kind: VALIDATION_FAILED / DECLINED / SESSION_ENDED)
    ├── ResponseValidationError   — Raw reply violates the request schema
    ├── ControlDefinitionError    — Bad builder arguments (construction time)
    ├── TransportError            — Outbound delivery failed
    └── RelayClientError          — Remote-side HTTP client failures

    ProcessorInvariantError (RuntimeError) — Programmer error, never recoverable
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Why a form request failed to produce a result."""

    VALIDATION_FAILED = "validation_failed"
    DECLINED = "declined"
    SESSION_ENDED = "session_ended"


class FormRelayError(Exception):
    """Base exception for the form relay."""

    def __init__(self, message: str, status_code: int = 500) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


# ── Request Failures ─────────────────────────────────────────────────

_KIND_STATUS = {
    ErrorKind.VALIDATION_FAILED: 422,
    ErrorKind.DECLINED: 409,
    ErrorKind.SESSION_ENDED: 410,
}

_KIND_MESSAGE = {
    ErrorKind.VALIDATION_FAILED: "Client sent an invalid response.",
    ErrorKind.DECLINED: "Client declined to answer the request.",
    ErrorKind.SESSION_ENDED: "Session ended before a response was received.",
}


class FormRequestError(FormRelayError):
    """Raised to the caller when a request ends without a typed result.

    Callers distinguish failure causes by `kind`, not by subclass.
    """

    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        self.kind = kind
        super().__init__(message or _KIND_MESSAGE[kind], _KIND_STATUS[kind])


# ── Validation Errors ────────────────────────────────────────────────

class ResponseValidationError(FormRelayError):
    """Raised when a raw reply does not conform to its request schema."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=422)


class ControlDefinitionError(FormRelayError):
    """Raised when a form control or button is built with invalid arguments."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=400)


# ── Transport Errors ─────────────────────────────────────────────────

class TransportError(FormRelayError):
    """Raised when a request cannot be handed to the remote client."""

    def __init__(self, message: str, session_id: str | int | None = None) -> None:
        self.session_id = session_id
        super().__init__(message, status_code=503)


# ── Programmer Errors ────────────────────────────────────────────────

class ProcessorInvariantError(RuntimeError):
    """Raised on internal invariant violations (unknown tags or schema kinds).

    Not a FormRelayError and never mapped to an ErrorKind.
    """


# ── Relay Client Errors ──────────────────────────────────────────────

class RelayClientError(FormRelayError):
    """Raised by RelayClient when the relay server call fails."""

    def __init__(self, message: str, upstream_status: int | None = None, status_code: int = 502) -> None:
        self.upstream_status = upstream_status
        super().__init__(message, status_code)
