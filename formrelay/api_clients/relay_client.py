"""HTTP client for the remote side of the relay.

Lets a remote client (or a test harness standing in for one) drive the
relay's HTTP transport: announce session start/end, poll for requests,
and post replies.

Features:
- Persistent connection pooling via httpx.Client
- Automatic retry with exponential backoff (5xx, timeouts, network errors)
- Structured logging for every request/response
- Custom exception mapping

Replies are safe to retry: the relay ignores a reply for a request that
is no longer pending.

Usage:
    with RelayClient("http://127.0.0.1:5000") as client:
        client.start_session("player-1")
        for item in client.poll("player-1"):
            client.reply("player-1", item["request_id"], True)
"""
from __future__ import annotations

import time
from typing import Any

import httpx
import structlog

from formrelay.config import Settings
from formrelay.utils.exceptions import RelayClientError

logger = structlog.get_logger(__name__)

# HTTP status codes that trigger automatic retry
RETRYABLE_STATUS_CODES = {500, 502, 503, 504}

# Failures raised before the request reached the relay
CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


class RelayClient:
    """Client for the relay's session and reply endpoints.

    Args:
        base_url: Relay server base URL (no trailing slash).
        timeout: HTTP request timeout in seconds.
        max_retries: Maximum number of attempts per call.
        transport: Optional httpx transport (e.g. `httpx.WSGITransport`).
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        max_retries: int = 3,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout, connect=10),
            headers={"Accept": "application/json", "User-Agent": "FormRelayClient/1.0"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.BaseTransport | None = None) -> RelayClient:
        """Build a client from RELAY_BASE_URL and the RELAY_CLIENT_* settings."""
        return cls(
            settings.RELAY_BASE_URL,
            timeout=settings.RELAY_CLIENT_TIMEOUT,
            max_retries=settings.RELAY_CLIENT_MAX_RETRIES,
            transport=transport,
        )

    def close(self) -> None:
        """Close the underlying HTTP client and release connections."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    # ── Public API ────────────────────────────────────────────────────

    def start_session(self, session_id: str) -> bool:
        """Announce a session. Returns False if it was already live."""
        return self._request("POST", f"/sessions/{session_id}")["started"]

    def end_session(self, session_id: str) -> int:
        """End a session. Returns the number of requests cancelled."""
        return self._request("DELETE", f"/sessions/{session_id}")["cancelled"]

    def poll(self, session_id: str) -> list[dict[str, Any]]:
        """Fetch queued requests as `{"request_id": int, "form": {...}}` dicts.

        Polling drains the outbox, so it is only retried when the relay was
        never reached.
        """
        return self._request("GET", f"/sessions/{session_id}/requests", idempotent=False)["requests"]

    def reply(self, session_id: str, request_id: int, response: Any) -> str:
        """Answer a request (None declines it). Returns the relay's outcome.

        Raises:
            RelayClientError: With upstream_status 422 if the relay rejected
                the reply as invalid.
        """
        body = self._request(
            "POST",
            f"/sessions/{session_id}/requests/{request_id}/reply",
            json={"response": response},
        )
        return body["outcome"]

    # ── Internal Methods ──────────────────────────────────────────────

    def _request(self, method: str, endpoint: str, json: Any = None, idempotent: bool = True) -> dict:
        """Execute an HTTP request with exponential backoff retry.

        Args:
            idempotent: False limits retries to connection failures.

        Returns:
            Parsed JSON response dict.
        """
        for attempt in range(1, self._max_retries + 1):
            try:
                logger.debug("relay_request", method=method, endpoint=endpoint, attempt=attempt)

                start = time.monotonic()
                response = self._client.request(method, endpoint, json=json)
                duration_ms = round((time.monotonic() - start) * 1000)

                logger.debug(
                    "relay_response",
                    endpoint=endpoint,
                    status=response.status_code,
                    duration_ms=duration_ms,
                )

                if idempotent and response.status_code in RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                    backoff = 2 ** (attempt - 1)  # 1s, 2s, 4s
                    logger.warning(
                        "relay_retryable_error",
                        status=response.status_code,
                        backoff=backoff,
                        attempt=attempt,
                    )
                    time.sleep(backoff)
                    continue

                if response.status_code >= 400:
                    raise RelayClientError(
                        message=self._error_message(response, endpoint),
                        upstream_status=response.status_code,
                    )

                return response.json()

            except RelayClientError:
                raise

            except httpx.HTTPError as e:
                retryable = idempotent or isinstance(e, CONNECT_ERRORS)
                if retryable and attempt < self._max_retries:
                    backoff = 2 ** (attempt - 1)
                    logger.warning(
                        "relay_http_error_retry",
                        endpoint=endpoint,
                        error=str(e),
                        backoff=backoff,
                        attempt=attempt,
                    )
                    time.sleep(backoff)
                    continue
                raise RelayClientError(f"Relay unreachable for {endpoint}: {e}") from e

        raise RelayClientError(f"All {self._max_retries} attempts exhausted for {endpoint}")

    @staticmethod
    def _error_message(response: httpx.Response, endpoint: str) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return f"HTTP {response.status_code} for {endpoint}"
