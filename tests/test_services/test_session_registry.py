"""Unit tests for the SessionRegistry and PendingRequest."""
from unittest.mock import MagicMock

import pytest

from formrelay.models.schemas import DialogSchema
from formrelay.services.session_registry import RequestState, SessionRegistry
from formrelay.utils.exceptions import ErrorKind, FormRequestError

SCHEMA = DialogSchema(title="T", content="C", button1="Yes", button2="No")


def _register(registry, session_id="s1"):
    on_success, on_failure = MagicMock(), MagicMock()
    request = registry.register(session_id, SCHEMA, (), on_success, on_failure)
    return request, on_success, on_failure


class TestLifecycle:
    """Tests for session start/end."""

    def test_start_makes_session_live(self):
        registry = SessionRegistry()
        assert registry.start_session("s1") is True
        assert registry.is_live("s1")
        assert registry.session_ids == ["s1"]

    def test_start_twice_keeps_pending(self, registry):
        _register(registry)
        assert registry.start_session("s1") is False
        assert registry.pending_count("s1") == 1

    def test_end_unknown_session(self):
        assert SessionRegistry().end_session("ghost") == 0

    def test_end_cancels_every_pending_request(self, registry):
        registered = [_register(registry) for _ in range(3)]

        assert registry.end_session("s1") == 3

        for request, on_success, on_failure in registered:
            assert request.state is RequestState.CANCELLED
            on_success.assert_not_called()
            on_failure.assert_called_once()
            assert on_failure.call_args.args[0].kind is ErrorKind.SESSION_ENDED
        assert not registry.is_live("s1")
        assert registry.pending_count("s1") == 0
        assert registry.total_pending == 0

    def test_end_leaves_other_sessions_alone(self, registry):
        registry.start_session("s2")
        _register(registry, "s2")
        _register(registry, "s1")

        registry.end_session("s1")

        assert registry.pending_count("s2") == 1

    def test_resend_from_cancel_continuation_fails(self, registry):
        """A continuation that immediately resends sees the session as ended."""
        errors = []

        def resend(error):
            try:
                registry.register("s1", SCHEMA, (), MagicMock(), MagicMock())
            except FormRequestError as e:
                errors.append(e.kind)

        registry.register("s1", SCHEMA, (), MagicMock(), resend)
        registry.end_session("s1")

        assert errors == [ErrorKind.SESSION_ENDED]
        assert registry.total_pending == 0


class TestRegistration:
    """Tests for register / pop / discard."""

    def test_register_requires_live_session(self):
        with pytest.raises(FormRequestError) as exc_info:
            SessionRegistry().register("ghost", SCHEMA, (), MagicMock(), MagicMock())
        assert exc_info.value.kind is ErrorKind.SESSION_ENDED

    def test_ids_increase_per_session(self, registry):
        registry.start_session("s2")
        ids_s1 = [_register(registry, "s1")[0].request_id for _ in range(3)]
        ids_s2 = [_register(registry, "s2")[0].request_id for _ in range(2)]

        assert ids_s1 == [1, 2, 3]
        assert ids_s2 == [1, 2]
        assert registry.pending_ids("s1") == [1, 2, 3]

    def test_ids_not_reused_after_reconnect(self, registry):
        first, _, _ = _register(registry)
        registry.end_session("s1")
        registry.start_session("s1")
        second, _, _ = _register(registry)

        assert second.request_id > first.request_id

    def test_ended_sessions_leave_no_counters(self, registry):
        for index in range(50):
            session_id = f"visitor-{index}"
            registry.start_session(session_id)
            _register(registry, session_id)
            registry.end_session(session_id)

        assert list(registry._next_id) == ["s1"]

    def test_restarted_session_counts_past_every_issued_id(self, registry):
        registry.start_session("s2")
        issued = [_register(registry, "s2")[0].request_id for _ in range(4)]
        registry.end_session("s1")
        registry.start_session("s1")

        assert _register(registry, "s1")[0].request_id > max(issued)

    def test_pop_removes_once(self, registry):
        request, _, _ = _register(registry)

        assert registry.pop("s1", request.request_id) is request
        assert registry.pop("s1", request.request_id) is None
        assert registry.pop("ghost", 1) is None

    def test_discard(self, registry):
        request, on_success, on_failure = _register(registry)

        assert registry.discard("s1", request.request_id) is True
        assert registry.discard("s1", request.request_id) is False
        on_success.assert_not_called()
        on_failure.assert_not_called()


class TestPendingRequest:
    """Tests for settling a PendingRequest exactly once."""

    def test_resolve_then_reject_is_noop(self, registry):
        request, on_success, on_failure = _register(registry)

        assert request.resolve(True) is True
        assert request.reject(FormRequestError(ErrorKind.DECLINED)) is False
        assert request.cancel() is False

        on_success.assert_called_once_with(True)
        on_failure.assert_not_called()
        assert request.state is RequestState.RESOLVED

    def test_reject(self, registry):
        request, on_success, on_failure = _register(registry)
        error = FormRequestError(ErrorKind.DECLINED)

        request.reject(error)
        request.resolve(False)

        on_failure.assert_called_once_with(error)
        on_success.assert_not_called()
        assert request.state is RequestState.REJECTED
