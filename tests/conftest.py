"""Shared pytest fixtures for the form relay test suite.

Provides reusable fixtures for:
- Settings overrides
- Flask application and test client
- Relay services (registry, outbox transport, broker, FormRelay)
- `answer`: drive an awaitable request to completion with a raw reply
"""
import asyncio

import pytest

from formrelay import create_app
from formrelay.config import Settings
from formrelay.services.request_broker import RequestBroker
from formrelay.services.session_registry import SessionRegistry
from formrelay.services.transport import OutboxTransport
from formrelay.services.windows import FormRelay


@pytest.fixture
def settings():
    """Create test settings."""
    return Settings(LOG_LEVEL="WARNING", LOG_FORMAT="console", OUTBOX_MAX_SIZE=8)


@pytest.fixture
def app(settings):
    """Create a Flask application instance for testing."""
    app = create_app(settings)
    app.config["TESTING"] = True
    yield app


@pytest.fixture
def client(app):
    """Create a Flask test client."""
    return app.test_client()


@pytest.fixture
def registry():
    """A registry with session "s1" already started."""
    registry = SessionRegistry()
    registry.start_session("s1")
    return registry


@pytest.fixture
def transport():
    return OutboxTransport(max_size=8)


@pytest.fixture
def broker(registry, transport):
    return RequestBroker(registry, transport)


@pytest.fixture
def relay(broker, settings):
    return FormRelay(broker, settings)


@pytest.fixture
def answer(broker, transport):
    """Run `make_request()` and answer the request it sends with `raw`.

    Returns whatever the awaited request returns; raises what it raises.
    """
    def _answer(make_request, raw, session_id="s1"):
        async def scenario():
            task = asyncio.create_task(make_request())
            await asyncio.sleep(0)
            [envelope] = transport.drain(session_id)
            broker.deliver_reply(session_id, envelope["request_id"], raw)
            return await task

        return asyncio.run(scenario())

    return _answer
