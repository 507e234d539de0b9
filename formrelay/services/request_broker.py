"""Request broker — sends one request and resumes its caller on reply.

Flow for a single request:
    register pending entry → transport.deliver → [caller suspended]
    → deliver_reply(raw) → ResponseProcessor → caller resumed

Two calling styles share the same machinery:
- `send()` takes an explicit (on_success, on_failure) continuation pair.
- `request()` is awaitable and raises FormRequestError on failure.

Exactly one continuation fires per request. A reply for a request that
is no longer pending (late, duplicate, or unknown) is ignored.

Usage:
    broker = RequestBroker(registry, transport)
    result = await broker.request("session-1", schema, tags)
    ...
    broker.deliver_reply("session-1", 1, [True, "Bob"])  # from the transport side
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Sequence

import structlog

from formrelay.models.schemas import RequestSchema, ResponseTag
from formrelay.services.response_processor import ResponseProcessor
from formrelay.services.session_registry import SessionId, SessionRegistry
from formrelay.services.transport import Transport
from formrelay.utils.exceptions import (
    ErrorKind,
    FormRequestError,
    ProcessorInvariantError,
    ResponseValidationError,
    TransportError,
)
from formrelay.utils.logger import session_log_context

logger = structlog.get_logger(__name__)


class ReplyOutcome(str, Enum):
    """What happened to a raw reply handed to the broker."""
    RESOLVED = "resolved"
    DECLINED = "declined"
    INVALID = "invalid"
    IGNORED = "ignored"


class RequestBroker:
    """Correlates outbound requests with the replies that answer them.

    Args:
        registry: Session registry owning the pending requests.
        transport: Delivers requests to remote clients.
        processor: Validates raw replies (a fresh one by default).
    """

    def __init__(
        self,
        registry: SessionRegistry,
        transport: Transport,
        processor: ResponseProcessor | None = None,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._processor = processor or ResponseProcessor()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    # ── Sending ───────────────────────────────────────────────────────

    def send(
        self,
        session_id: SessionId,
        schema: RequestSchema,
        tags: Sequence[ResponseTag | None],
        on_success: Callable[[Any], None],
        on_failure: Callable[[Exception], None],
    ) -> int:
        """Register a request and hand it to the transport.

        Returns:
            The request id the reply must be addressed to.

        Raises:
            FormRequestError: SESSION_ENDED if the session is not live;
                nothing is registered and the transport is not called.
        """
        # registration and delivery happen as one step relative to end_session
        with self._registry.lock:
            request = self._registry.register(session_id, schema, tags, on_success, on_failure)

            with session_log_context(session_id, form_request_id=request.request_id):
                logger.info("form_request_sent", kind=schema.kind, title=schema.title)
                try:
                    self._transport.deliver(session_id, request.request_id, schema)
                except TransportError as e:
                    logger.warning("form_delivery_failed", error=e.message)
                    self.deliver_reply(session_id, request.request_id, None)

        return request.request_id

    def end_session(self, session_id: SessionId) -> int:
        """Cancel a session's pending requests and drop its undelivered ones.

        Returns:
            Number of pending requests cancelled.
        """
        with self._registry.lock:
            cancelled = self._registry.end_session(session_id)
            dropped = self._transport.discard_session(session_id)
        if dropped:
            logger.info("outbox_discarded", session_id=session_id, dropped=dropped)
        return cancelled

    async def request(
        self,
        session_id: SessionId,
        schema: RequestSchema,
        tags: Sequence[ResponseTag | None] = (),
    ) -> Any:
        """Send a request and suspend until it is answered.

        Replies may be delivered from any thread; the result is handed back
        to the awaiting event loop.

        Returns:
            The typed result produced by ResponseProcessor.

        Raises:
            FormRequestError: DECLINED, VALIDATION_FAILED or SESSION_ENDED.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        def settle(setter: Callable[[Any], None], value: Any) -> None:
            if not future.done():
                setter(value)

        def post(setter: Callable[[Any], None], value: Any) -> None:
            if loop.is_closed():
                logger.warning("form_caller_gone", session_id=session_id)
                return
            loop.call_soon_threadsafe(settle, setter, value)

        request_id = self.send(
            session_id,
            schema,
            tags,
            on_success=lambda result: post(future.set_result, result),
            on_failure=lambda error: post(future.set_exception, error),
        )

        try:
            return await future
        except asyncio.CancelledError:
            if self._registry.discard(session_id, request_id):
                logger.info("form_request_abandoned", session_id=session_id, form_request_id=request_id)
            raise

    # ── Replies ───────────────────────────────────────────────────────

    def deliver_reply(self, session_id: SessionId, request_id: int, response: Any) -> ReplyOutcome:
        """Settle a pending request with the client's raw reply.

        Args:
            session_id: Session the reply came from.
            request_id: Request the reply answers.
            response: Raw reply; None means the client declined or closed.

        Returns:
            The outcome. IGNORED means no matching request was pending.

        Raises:
            ProcessorInvariantError: On internal errors. The caller is
                failed with the same error before it propagates.
        """
        with session_log_context(session_id, form_request_id=request_id):
            request = self._registry.pop(session_id, request_id)
            if request is None:
                logger.info("reply_ignored")
                return ReplyOutcome.IGNORED

            if response is None:
                logger.info("form_declined")
                request.reject(FormRequestError(ErrorKind.DECLINED))
                return ReplyOutcome.DECLINED

            try:
                result = self._processor.process(request.schema, request.tags, response)
            except ResponseValidationError as e:
                logger.warning("reply_invalid", error=e.message)
                request.reject(FormRequestError(ErrorKind.VALIDATION_FAILED, e.message))
                return ReplyOutcome.INVALID
            except ProcessorInvariantError as e:
                logger.error("reply_processing_aborted", error=str(e), exc_info=True)
                request.abort(e)
                raise

            logger.info("form_resolved")
            request.resolve(result)
            return ReplyOutcome.RESOLVED
