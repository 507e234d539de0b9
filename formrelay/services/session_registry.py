"""Session registry — outstanding form requests per live session.

The registry is created once by the host (see `create_app`) and lives as
long as the host's session-management subsystem. It maps each live
session to its pending requests and allocates request ids.

A session is live between `start_session` and `end_session`. Ending a
session cancels every pending request it owns with SESSION_ENDED before
the session can be started or registered against again.

All mutations are serialized through one re-entrant lock, so replies,
lifecycle events and new registrations may arrive from any thread.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Sequence

import structlog

from formrelay.models.schemas import RequestSchema, ResponseTag
from formrelay.utils.exceptions import ErrorKind, FormRequestError

logger = structlog.get_logger(__name__)

SessionId = str | int


class RequestState(str, Enum):
    """Lifecycle of a pending request. Every state but PENDING is terminal."""
    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass
class PendingRequest:
    """One in-flight request awaiting the client's reply.

    `resolve`, `reject` and `cancel` each settle the request; only the
    first call has any effect.
    """
    session_id: SessionId
    request_id: int
    schema: RequestSchema
    tags: tuple[ResponseTag | None, ...]
    on_success: Callable[[Any], None]
    on_failure: Callable[[Exception], None]
    state: RequestState = RequestState.PENDING
    _settle_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _settle(self, state: RequestState) -> bool:
        with self._settle_lock:
            if self.state is not RequestState.PENDING:
                return False
            self.state = state
            return True

    def resolve(self, result: Any) -> bool:
        if not self._settle(RequestState.RESOLVED):
            return False
        self.on_success(result)
        return True

    def reject(self, error: FormRequestError) -> bool:
        if not self._settle(RequestState.REJECTED):
            return False
        self.on_failure(error)
        return True

    def cancel(self) -> bool:
        if not self._settle(RequestState.CANCELLED):
            return False
        self.on_failure(FormRequestError(ErrorKind.SESSION_ENDED))
        return True

    def abort(self, error: Exception) -> bool:
        """Fail the request with an internal error instead of an ErrorKind."""
        if not self._settle(RequestState.REJECTED):
            return False
        self.on_failure(error)
        return True


class SessionRegistry:
    """Process-wide table: session id → {request id → PendingRequest}.

    Request ids are allocated per session. A session's counter is dropped
    when it ends; a session (re)started after ids have been issued counts
    on from the highest id the registry has handed out, so an id is never
    reused even when a session id reconnects.
    """

    def __init__(self) -> None:
        self._pending: dict[SessionId, dict[int, PendingRequest]] = {}
        self._next_id: dict[SessionId, int] = {}
        self._last_issued = 0
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Held across a mutation; callers may hold it to group several."""
        return self._lock

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start_session(self, session_id: SessionId) -> bool:
        """Begin tracking a session.

        Returns:
            True if the session was started, False if it was already live
            (its pending requests are kept).
        """
        with self._lock:
            if session_id in self._pending:
                logger.warning("session_already_started", session_id=session_id)
                return False
            self._pending[session_id] = {}
            self._next_id[session_id] = self._last_issued + 1
        logger.info("session_started", session_id=session_id)
        return True

    def end_session(self, session_id: SessionId) -> int:
        """Stop tracking a session and cancel all of its pending requests.

        Cancellation runs under the registry lock, so no new request for
        this session can be registered until every continuation has fired.

        Returns:
            Number of requests cancelled (0 for an unknown session).
        """
        with self._lock:
            pending = self._pending.pop(session_id, None)
            self._next_id.pop(session_id, None)
            if pending is None:
                logger.debug("session_end_unknown", session_id=session_id)
                return 0
            cancelled = 0
            for request in pending.values():
                if request.cancel():
                    cancelled += 1
        logger.info("session_ended", session_id=session_id, cancelled=cancelled)
        return cancelled

    # ── Pending Requests ──────────────────────────────────────────────

    def register(
        self,
        session_id: SessionId,
        schema: RequestSchema,
        tags: Sequence[ResponseTag | None],
        on_success: Callable[[Any], None],
        on_failure: Callable[[Exception], None],
    ) -> PendingRequest:
        """Create a pending request under a live session.

        Raises:
            FormRequestError: SESSION_ENDED if the session is not live.
        """
        with self._lock:
            requests = self._pending.get(session_id)
            if requests is None:
                raise FormRequestError(ErrorKind.SESSION_ENDED)
            request_id = self._next_id[session_id]
            self._next_id[session_id] = request_id + 1
            self._last_issued = max(self._last_issued, request_id)
            request = PendingRequest(
                session_id=session_id,
                request_id=request_id,
                schema=schema,
                tags=tuple(tags),
                on_success=on_success,
                on_failure=on_failure,
            )
            requests[request_id] = request
        return request

    def pop(self, session_id: SessionId, request_id: int) -> PendingRequest | None:
        """Remove and return a pending request, or None if it is not pending."""
        with self._lock:
            requests = self._pending.get(session_id)
            if requests is None:
                return None
            return requests.pop(request_id, None)

    def discard(self, session_id: SessionId, request_id: int) -> bool:
        """Forget a pending request without settling it."""
        return self.pop(session_id, request_id) is not None

    # ── Inspection ────────────────────────────────────────────────────

    def is_live(self, session_id: SessionId) -> bool:
        with self._lock:
            return session_id in self._pending

    def pending_count(self, session_id: SessionId) -> int:
        with self._lock:
            return len(self._pending.get(session_id, {}))

    def pending_ids(self, session_id: SessionId) -> list[int]:
        with self._lock:
            return sorted(self._pending.get(session_id, {}))

    @property
    def session_ids(self) -> list[SessionId]:
        with self._lock:
            return list(self._pending)

    @property
    def total_pending(self) -> int:
        with self._lock:
            return sum(len(requests) for requests in self._pending.values())
