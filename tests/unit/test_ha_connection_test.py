"""Unit tests for the one-shot HA connection test."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.ha.connection_test import run_connection_test

_RealAsyncClient = httpx.AsyncClient

PROBE_OK = {"websocket_access": True, "event_subscription": True, "error": None}


def _transport(handler):
    """Patch httpx.AsyncClient as seen by the connection test to use a mock transport."""
    return patch(
        "src.ha.connection_test.httpx.AsyncClient",
        lambda **kw: _RealAsyncClient(transport=httpx.MockTransport(handler), **kw),
    )


@pytest.mark.asyncio
class TestRunConnectionTest:
    async def test_success(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer tok"
            return httpx.Response(200, json={"version": "2025.2.1"})

        probe = AsyncMock(return_value=PROBE_OK)
        with _transport(handler), patch("src.ha.connection_test.probe_event_subscription", probe):
            result = await run_connection_test("http://ha.local:8123/", "tok", timeout=5)

        assert result.success is True
        assert result.api_access is True
        assert result.websocket_access is True
        assert result.event_subscription is True
        assert result.version == "2025.2.1"
        assert result.latency_ms is not None
        assert probe.call_args[0][0] == "ws://ha.local:8123/api/websocket"

    async def test_invalid_token(self):
        probe = AsyncMock(return_value=PROBE_OK)
        with _transport(lambda r: httpx.Response(401)), patch(
            "src.ha.connection_test.probe_event_subscription", probe
        ):
            result = await run_connection_test("http://ha.local:8123", "bad", timeout=5)

        assert result.success is False
        assert result.error == "Authentication failed: invalid access token"
        probe.assert_not_called()

    async def test_unexpected_status(self):
        with _transport(lambda r: httpx.Response(500)):
            result = await run_connection_test(
                "http://ha.local:8123", "tok", timeout=5, check_websocket=False
            )
        assert result.success is False
        assert result.error == "HTTP 500 from /api/config"

    async def test_unreachable_host(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with _transport(handler):
            result = await run_connection_test("http://ha.local:8123", "tok", timeout=5)
        assert result.success is False
        assert result.api_access is False
        assert result.error.startswith("Connection failed")

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with _transport(handler):
            result = await run_connection_test("http://ha.local:8123", "tok", timeout=2)
        assert result.error == "Connection timed out after 2s"

    async def test_websocket_failure_marks_unsuccessful(self):
        probe = AsyncMock(
            return_value={"websocket_access": False, "event_subscription": False, "error": "bad"}
        )
        with _transport(lambda r: httpx.Response(200, json={"version": "2025.1.0"})), patch(
            "src.ha.connection_test.probe_event_subscription", probe
        ):
            result = await run_connection_test("http://ha.local:8123", "tok", timeout=5)

        assert result.api_access is True
        assert result.success is False
        assert result.error == "bad"

    async def test_rest_only(self):
        with _transport(lambda r: httpx.Response(200, json={"version": "2025.1.0"})):
            result = await run_connection_test(
                "http://ha.local:8123", "tok", timeout=5, check_websocket=False
            )
        assert result.success is True
        assert result.to_dict()["websocket_access"] is False
