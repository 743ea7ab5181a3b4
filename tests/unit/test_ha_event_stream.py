"""Unit tests for the persistent HA event stream."""

import json
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from src.ha.event_stream import HAEventStream, HomeAssistantEvent
from src.ha.websocket import ConnectionState

WS_URL = "ws://ha.local:8123/api/websocket"


class _async_ctx:
    def __init__(self, ws: AsyncMock) -> None:
        self.ws = ws

    async def __aenter__(self) -> AsyncMock:
        return self.ws

    async def __aexit__(self, *args: object) -> None:
        return None


def _state_changed(entity_id: str, old: str, new: str) -> dict[str, Any]:
    return {
        "type": "event",
        "event": {
            "event_type": "state_changed",
            "time_fired": "2025-01-01T07:00:00+00:00",
            "data": {
                "entity_id": entity_id,
                "old_state": {"state": old},
                "new_state": {"state": new, "attributes": {"friendly_name": "Kitchen"}},
            },
        },
    }


class TestHomeAssistantEvent:
    def test_from_ha(self):
        event = HomeAssistantEvent.from_ha(_state_changed("light.kitchen", "off", "on")["event"], "c1")
        assert event.event_type == "state_changed"
        assert event.entity_id == "light.kitchen"
        assert event.old_state == "off"
        assert event.new_state == "on"
        assert event.attributes == {"friendly_name": "Kitchen"}
        assert event.timestamp == datetime(2025, 1, 1, 7, 0, tzinfo=UTC)
        assert event.connection_id == "c1"
        assert event.domain == "light"

    def test_missing_states(self):
        event = HomeAssistantEvent.from_ha(
            {"event_type": "state_changed", "data": {"entity_id": "sensor.x", "old_state": None}}
        )
        assert event.old_state is None
        assert event.new_state is None
        assert event.attributes == {}

    def test_domain_without_entity(self):
        assert HomeAssistantEvent(event_type="call_service").domain is None


class TestBackoff:
    def test_exponential_then_capped(self):
        stream = HAEventStream(WS_URL, "tok", AsyncMock(), reconnect_delay=5.0)
        assert stream.backoff_delay(1) == 5.0
        assert stream.backoff_delay(2) == 10.0
        assert stream.backoff_delay(3) == 20.0
        assert stream.backoff_delay(10) == 60.0


@pytest.mark.asyncio
class TestRun:
    async def test_dispatches_events(self):
        handler = AsyncMock()
        ws = AsyncMock()
        ws.recv = AsyncMock(
            side_effect=[
                json.dumps({"type": "auth_required"}),
                json.dumps({"type": "auth_ok"}),
                json.dumps({"id": 1, "type": "result", "success": True}),
            ]
        )
        ws.__aiter__.return_value = [
            json.dumps(_state_changed("light.kitchen", "off", "on")),
            json.dumps({"type": "pong", "id": 2}),
            "not json",
        ]
        stream = HAEventStream(
            WS_URL, "tok", handler, connection_id="c1", reconnect_delay=0, max_reconnect_attempts=1
        )

        with patch("src.ha.event_stream.ws_connect", return_value=_async_ctx(ws)):
            await stream.run()

        handler.assert_awaited_once()
        event = handler.call_args[0][0]
        assert event.entity_id == "light.kitchen"
        assert event.connection_id == "c1"
        assert stream.events_received == 1
        assert stream.last_seen is not None
        # The server closing the socket counts as a lost connection
        assert stream.state == ConnectionState.ERROR

    async def test_auth_failure_stops_without_retry(self):
        ws = AsyncMock()
        ws.recv = AsyncMock(
            side_effect=[
                json.dumps({"type": "auth_required"}),
                json.dumps({"type": "auth_invalid", "message": "Invalid access token"}),
            ]
        )
        with patch("src.ha.event_stream.ws_connect", return_value=_async_ctx(ws)) as connect:
            stream = HAEventStream(WS_URL, "bad", AsyncMock(), reconnect_delay=0)
            await stream.run()

        assert stream.state == ConnectionState.AUTH_FAILED
        assert stream.last_error == "Invalid access token"
        assert connect.call_count == 1
        assert stream.is_running is False

    async def test_gives_up_after_max_attempts(self):
        with patch("src.ha.event_stream.ws_connect", side_effect=OSError("refused")) as connect:
            stream = HAEventStream(
                WS_URL, "tok", AsyncMock(), reconnect_delay=0, max_reconnect_attempts=3
            )
            await stream.run()

        assert connect.call_count == 3
        assert stream.state == ConnectionState.ERROR
        assert stream.reconnect_attempts == 3
        assert stream.stats["last_error"] == "refused"

    async def test_handler_errors_do_not_stop_dispatch(self):
        handler = AsyncMock(side_effect=RuntimeError("boom"))
        stream = HAEventStream(WS_URL, "tok", handler)
        await stream._dispatch(json.dumps(_state_changed("switch.fan", "on", "off")))
        await stream._dispatch(json.dumps(_state_changed("switch.fan", "off", "on")))
        assert handler.await_count == 2
        assert stream.events_received == 2


@pytest.mark.asyncio
class TestStop:
    async def test_stop_without_start(self):
        stream = HAEventStream(WS_URL, "tok", AsyncMock())
        await stream.stop()
        assert stream.state == ConnectionState.DISCONNECTED
        assert stream.stats["state"] == "DISCONNECTED"
