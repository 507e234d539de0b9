"""Transport contract and the HTTP-polling outbox transport.

The broker only needs one thing from a transport: hand a request to the
remote client. Replies travel the other way through
`RequestBroker.deliver_reply`, called by whatever receives them.

`OutboxTransport` keeps a bounded per-session queue of wire payloads that
remote clients drain with `GET /sessions/<id>/requests`.
"""
from __future__ import annotations

import threading
from collections import deque
from typing import Any, Protocol

import structlog

from formrelay.utils.exceptions import TransportError

logger = structlog.get_logger(__name__)


class Transport(Protocol):
    """Anything able to show a request to a session's remote client."""

    def deliver(self, session_id: str | int, request_id: int, schema: Any) -> None:
        """Hand the request over for display.

        Raises:
            TransportError: If the request cannot be delivered. The broker
                reports this to the caller as a decline.
        """
        ...

    def discard_session(self, session_id: str | int) -> int:
        """Drop requests of an ended session not yet shown; return how many."""
        ...


class OutboxTransport:
    """Thread-safe in-memory outbox polled by remote clients.

    Args:
        max_size: Maximum undelivered requests per session; one more
            raises TransportError.
    """

    def __init__(self, max_size: int = 32) -> None:
        self._outbox: dict[str | int, deque[dict[str, Any]]] = {}
        self._max_size = max_size
        self._lock = threading.Lock()

    def deliver(self, session_id: str | int, request_id: int, schema: Any) -> None:
        envelope = {"request_id": request_id, "form": schema.to_wire()}
        with self._lock:
            queue = self._outbox.setdefault(session_id, deque())
            if len(queue) >= self._max_size:
                raise TransportError(
                    f"Outbox for session '{session_id}' is full ({self._max_size} requests)",
                    session_id=session_id,
                )
            queue.append(envelope)
        logger.debug("outbox_enqueued", session_id=session_id, form_request_id=request_id)

    def drain(self, session_id: str | int) -> list[dict[str, Any]]:
        """Remove and return every queued request for a session, oldest first."""
        with self._lock:
            queue = self._outbox.pop(session_id, None)
        return list(queue) if queue else []

    def discard_session(self, session_id: str | int) -> int:
        """Drop undelivered requests of an ended session.

        Returns:
            Number of requests dropped.
        """
        with self._lock:
            queue = self._outbox.pop(session_id, None)
        return len(queue) if queue else 0

    def queued(self, session_id: str | int) -> int:
        with self._lock:
            return len(self._outbox.get(session_id, ()))
