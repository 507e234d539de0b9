"""Unit tests for the RequestBroker."""
import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from formrelay.models.controls import Button, FormControl
from formrelay.models.schemas import DialogSchema, FormSchema, MenuSchema, ResponseTag
from formrelay.services.request_broker import ReplyOutcome, RequestBroker
from formrelay.services.session_registry import SessionRegistry
from formrelay.services.transport import OutboxTransport, Transport
from formrelay.utils.exceptions import (
    ErrorKind,
    FormRequestError,
    ProcessorInvariantError,
    TransportError,
)

DIALOG = DialogSchema(title="T", content="C", button1="Yes", button2="No")
MENU = MenuSchema(title="T", content="C", buttons=(Button.simple("A").data, Button.simple("B").data))


@pytest.fixture
def mock_transport():
    return MagicMock(spec=Transport)


@pytest.fixture
def callback_broker(registry, mock_transport):
    """Broker over a mock transport for callback-style tests."""
    return RequestBroker(registry, mock_transport)


def _send(broker, schema=DIALOG, tags=(), session_id="s1"):
    on_success, on_failure = MagicMock(), MagicMock()
    request_id = broker.send(session_id, schema, tags, on_success, on_failure)
    return request_id, on_success, on_failure


class TestSend:
    """Tests for RequestBroker.send."""

    def test_delivers_to_transport(self, callback_broker, mock_transport, registry):
        request_id, _, _ = _send(callback_broker)

        mock_transport.deliver.assert_called_once_with("s1", request_id, DIALOG)
        assert registry.pending_ids("s1") == [request_id]

    def test_unknown_session_fails_without_transport(self, callback_broker, mock_transport, registry):
        with pytest.raises(FormRequestError) as exc_info:
            _send(callback_broker, session_id="ghost")

        assert exc_info.value.kind is ErrorKind.SESSION_ENDED
        mock_transport.deliver.assert_not_called()
        assert registry.total_pending == 0

    def test_delivery_failure_reported_as_decline(self, callback_broker, mock_transport, registry):
        mock_transport.deliver.side_effect = TransportError("outbox full", session_id="s1")

        _, on_success, on_failure = _send(callback_broker)

        on_success.assert_not_called()
        assert on_failure.call_args.args[0].kind is ErrorKind.DECLINED
        assert registry.total_pending == 0

    def test_full_outbox_declines(self, registry):
        broker = RequestBroker(registry, OutboxTransport(max_size=1))

        _, _, first_failure = _send(broker)
        _, _, second_failure = _send(broker)

        first_failure.assert_not_called()
        assert second_failure.call_args.args[0].kind is ErrorKind.DECLINED

    def test_session_end_during_delivery_leaves_no_stale_request(self, registry, transport):
        ender = {}

        class EndsSessionMidDelivery:
            """Outbox whose delivery races a session end from another thread."""

            def deliver(self, session_id, request_id, schema):
                ender["thread"] = threading.Thread(target=broker.end_session, args=(session_id,))
                ender["thread"].start()
                ender["thread"].join(timeout=0.05)
                transport.deliver(session_id, request_id, schema)

            def discard_session(self, session_id):
                return transport.discard_session(session_id)

        broker = RequestBroker(registry, EndsSessionMidDelivery())

        _, on_success, on_failure = _send(broker)
        ender["thread"].join()
        registry.start_session("s1")

        assert transport.drain("s1") == []
        on_success.assert_not_called()
        assert on_failure.call_args.args[0].kind is ErrorKind.SESSION_ENDED

    def test_end_session_discards_undelivered(self, registry, transport, broker):
        _send(broker)
        _send(broker)

        assert broker.end_session("s1") == 2
        assert transport.queued("s1") == 0
        assert not registry.is_live("s1")


class TestDeliverReply:
    """Tests for RequestBroker.deliver_reply."""

    def test_valid_reply_resolves(self, callback_broker):
        request_id, on_success, on_failure = _send(callback_broker, MENU)

        assert callback_broker.deliver_reply("s1", request_id, 1) is ReplyOutcome.RESOLVED
        on_success.assert_called_once_with(1)
        on_failure.assert_not_called()

    def test_null_reply_declines(self, callback_broker):
        request_id, on_success, on_failure = _send(callback_broker)

        assert callback_broker.deliver_reply("s1", request_id, None) is ReplyOutcome.DECLINED
        assert on_failure.call_args.args[0].kind is ErrorKind.DECLINED
        on_success.assert_not_called()

    def test_invalid_reply_fails_validation(self, callback_broker):
        request_id, on_success, on_failure = _send(callback_broker, MENU)

        assert callback_broker.deliver_reply("s1", request_id, 5) is ReplyOutcome.INVALID
        error = on_failure.call_args.args[0]
        assert error.kind is ErrorKind.VALIDATION_FAILED
        assert "out of range" in error.message
        on_success.assert_not_called()

    def test_duplicate_reply_ignored(self, callback_broker, registry):
        request_id, on_success, on_failure = _send(callback_broker)

        callback_broker.deliver_reply("s1", request_id, True)
        assert callback_broker.deliver_reply("s1", request_id, False) is ReplyOutcome.IGNORED
        assert callback_broker.deliver_reply("s1", request_id, None) is ReplyOutcome.IGNORED

        on_success.assert_called_once_with(True)
        on_failure.assert_not_called()
        assert registry.total_pending == 0

    def test_reply_after_session_end_ignored(self, callback_broker, registry):
        request_id, on_success, on_failure = _send(callback_broker)
        registry.end_session("s1")

        assert callback_broker.deliver_reply("s1", request_id, True) is ReplyOutcome.IGNORED
        on_success.assert_not_called()
        on_failure.assert_called_once()

    def test_concurrent_requests_resolved_by_own_id(self, callback_broker):
        first_id, first_success, _ = _send(callback_broker)
        second_id, second_success, _ = _send(callback_broker)

        callback_broker.deliver_reply("s1", second_id, False)
        second_success.assert_called_once_with(False)
        first_success.assert_not_called()

        callback_broker.deliver_reply("s1", first_id, True)
        first_success.assert_called_once_with(True)

    def test_internal_error_fails_caller_and_propagates(self, callback_broker):
        schema = FormSchema(title="T", content=(FormControl.dropdown("C", ["a"]).data,))
        bogus = ResponseTag.model_construct(return_kind="bogus", mapping=())
        request_id, _, on_failure = _send(callback_broker, schema, (bogus,))

        with pytest.raises(ProcessorInvariantError):
            callback_broker.deliver_reply("s1", request_id, [0])
        assert isinstance(on_failure.call_args.args[0], ProcessorInvariantError)


class TestAwaitableRequest:
    """Tests for RequestBroker.request (asyncio)."""

    def test_resolves_with_typed_result(self, answer, broker):
        assert answer(lambda: broker.request("s1", MENU), 0) == 0

    def test_decline_raises(self, answer, broker):
        with pytest.raises(FormRequestError) as exc_info:
            answer(lambda: broker.request("s1", DIALOG), None)
        assert exc_info.value.kind is ErrorKind.DECLINED

    def test_unknown_session_raises_immediately(self, broker, transport):
        with pytest.raises(FormRequestError) as exc_info:
            asyncio.run(broker.request("ghost", DIALOG))
        assert exc_info.value.kind is ErrorKind.SESSION_ENDED
        assert transport.queued("ghost") == 0

    def test_session_end_cancels_waiters(self, broker, registry):
        async def scenario():
            tasks = [asyncio.create_task(broker.request("s1", DIALOG)) for _ in range(3)]
            await asyncio.sleep(0)
            assert registry.pending_count("s1") == 3
            registry.end_session("s1")
            return await asyncio.gather(*tasks, return_exceptions=True)

        results = asyncio.run(scenario())

        assert [r.kind for r in results] == [ErrorKind.SESSION_ENDED] * 3
        assert registry.pending_count("s1") == 0

    def test_reply_from_another_thread(self, broker, transport):
        async def scenario():
            task = asyncio.create_task(broker.request("s1", DIALOG))
            await asyncio.sleep(0)
            [envelope] = transport.drain("s1")
            worker = threading.Thread(target=broker.deliver_reply, args=("s1", envelope["request_id"], True))
            worker.start()
            result = await asyncio.wait_for(task, timeout=5)
            worker.join()
            return result

        assert asyncio.run(scenario()) is True

    def test_cancelled_caller_discards_pending(self, broker, registry):
        async def scenario():
            task = asyncio.create_task(broker.request("s1", DIALOG))
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert registry.pending_count("s1") == 0
