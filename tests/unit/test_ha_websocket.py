"""Tests for HA WebSocket helpers.

Covers the auth handshake and the one-shot subscription check
used by connection tests.
"""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from src.exceptions import HAClientError
from src.ha.websocket import (
    _authenticate,
    build_ws_url,
    probe_event_subscription,
)

WS_URL = "ws://homeassistant.local:8123/api/websocket"
TOKEN = "test-token-abc123"


def _make_ws_mock(responses: list[dict[str, Any]]) -> AsyncMock:
    """Create a mock WebSocket connection that yields predefined responses."""
    ws = AsyncMock()
    ws.recv = AsyncMock(side_effect=[json.dumps(r) for r in responses])
    ws.send = AsyncMock()
    return ws


class _async_ctx:
    """Minimal async context manager wrapping a mock WebSocket."""

    def __init__(self, ws: AsyncMock) -> None:
        self.ws = ws

    async def __aenter__(self) -> AsyncMock:
        return self.ws

    async def __aexit__(self, *args: object) -> None:
        return None


AUTH_OK = [
    {"type": "auth_required", "ha_version": "2025.1.0"},
    {"type": "auth_ok", "ha_version": "2025.1.0"},
]


class TestBuildWsUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("http://ha.local:8123", "ws://ha.local:8123/api/websocket"),
            ("https://ha.example.com/", "wss://ha.example.com/api/websocket"),
        ],
    )
    def test_scheme_mapping(self, url, expected):
        assert build_ws_url(url) == expected


@pytest.mark.asyncio
class TestAuthenticate:
    async def test_sends_token(self):
        ws = _make_ws_mock(AUTH_OK)
        await _authenticate(ws, TOKEN)
        sent = json.loads(ws.send.call_args[0][0])
        assert sent == {"type": "auth", "access_token": TOKEN}

    async def test_auth_invalid_is_tagged(self):
        ws = _make_ws_mock(
            [{"type": "auth_required"}, {"type": "auth_invalid", "message": "Invalid access token"}]
        )
        with pytest.raises(HAClientError) as exc_info:
            await _authenticate(ws, TOKEN)
        assert exc_info.value.tool == "ws_auth_invalid"

    async def test_unexpected_first_message(self):
        ws = _make_ws_mock([{"type": "event"}])
        with pytest.raises(HAClientError, match="Expected auth_required"):
            await _authenticate(ws, TOKEN)


@pytest.mark.asyncio
class TestProbeEventSubscription:
    async def test_success(self):
        ws = _make_ws_mock(
            [
                *AUTH_OK,
                {"type": "result", "id": 1, "success": True, "result": None},
                {"type": "result", "id": 2, "success": True, "result": None},
            ]
        )
        with patch("src.ha.websocket.ws_connect", return_value=_async_ctx(ws)):
            result = await probe_event_subscription(WS_URL, TOKEN)
        assert result == {"websocket_access": True, "event_subscription": True, "error": None}
        subscribe = json.loads(ws.send.call_args_list[1][0][0])
        assert subscribe["type"] == "subscribe_events"
        assert subscribe["event_type"] == "state_changed"

    async def test_subscription_rejected(self):
        ws = _make_ws_mock(
            [*AUTH_OK, {"type": "result", "id": 1, "success": False, "error": {"message": "denied"}}]
        )
        with patch("src.ha.websocket.ws_connect", return_value=_async_ctx(ws)):
            result = await probe_event_subscription(WS_URL, TOKEN)
        assert result["websocket_access"] is True
        assert result["event_subscription"] is False
        assert result["error"] == "denied"

    async def test_auth_failure_never_raises(self):
        ws = _make_ws_mock([{"type": "auth_required"}, {"type": "auth_invalid", "message": "bad"}])
        with patch("src.ha.websocket.ws_connect", return_value=_async_ctx(ws)):
            result = await probe_event_subscription(WS_URL, TOKEN)
        assert result["websocket_access"] is False
        assert result["error"] == "bad"

    async def test_connection_failure_never_raises(self):
        with patch("src.ha.websocket.ws_connect", side_effect=OSError("refused")):
            result = await probe_event_subscription(WS_URL, TOKEN)
        assert result["websocket_access"] is False
        assert "refused" in result["error"]
