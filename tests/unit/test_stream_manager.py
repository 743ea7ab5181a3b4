"""Unit tests for the per-connection event stream registry."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.ha.stream_manager import StreamManager, get_stream_manager, reset_stream_manager
from src.ha.websocket import ConnectionState


def _fake_stream(*args, **kwargs) -> MagicMock:
    stream = MagicMock()
    stream.args = args
    stream.kwargs = kwargs
    stream.is_running = True
    stream.state = ConnectionState.CONNECTED
    stream.stats = {"state": "CONNECTED", "events_received": 0}
    stream.stop = AsyncMock()
    return stream


def _fake_handler(*args, **kwargs) -> MagicMock:
    handler = MagicMock()
    handler.start = AsyncMock()
    handler.stop = AsyncMock()
    handler.stats = {"pending": 0}
    return handler


def _stream_that_gives_up(*args, **kwargs) -> MagicMock:
    stream = _fake_stream(*args, **kwargs)

    async def _run() -> None:
        stream.state = ConnectionState.AUTH_FAILED
        stream.is_running = False

    stream.start_task = MagicMock(side_effect=lambda: asyncio.create_task(_run()))
    return stream


@pytest.fixture
def manager(test_settings):
    with (
        patch("src.ha.stream_manager.get_settings", return_value=test_settings),
        patch("src.ha.stream_manager.HAEventStream", side_effect=_fake_stream),
        patch("src.ha.stream_manager.EventHandler", side_effect=_fake_handler),
    ):
        yield StreamManager()


@pytest.mark.asyncio
class TestStreamManager:
    async def test_start_creates_stream(self, manager):
        await manager.start("c1", "http://ha.local:8123", "tok", "u1")

        assert manager.is_running("c1")
        assert manager.state("c1") == ConnectionState.CONNECTED
        managed = manager._streams["c1"]
        assert managed.stream.args[0] == "ws://ha.local:8123/api/websocket"
        assert managed.stream.kwargs["connection_id"] == "c1"
        managed.handler.start.assert_awaited_once()
        managed.stream.start_task.assert_called_once()

    async def test_restart_replaces_existing(self, manager):
        await manager.start("c1", "http://ha.local:8123", "tok")
        first = manager._streams["c1"]
        await manager.start("c1", "http://ha.local:8123", "new-tok")

        first.stream.stop.assert_awaited_once()
        first.handler.stop.assert_awaited_once()
        assert manager._streams["c1"] is not first

    async def test_stop(self, manager):
        await manager.start("c1", "http://ha.local:8123", "tok")
        assert await manager.stop("c1") is True
        assert await manager.stop("c1") is False
        assert manager.is_running("c1") is False
        assert manager.state("c1") is None
        assert manager.status("c1") is None

    async def test_status_and_stats(self, manager):
        await manager.start("c2", "http://b:8123", "tok")
        await manager.start("c1", "http://a:8123", "tok")

        status = manager.status("c1")
        assert status["running"] is True
        assert status["state"] == "CONNECTED"
        assert status["handler"] == {"pending": 0}
        assert manager.stats == {
            "streams": 2,
            "by_state": {"CONNECTED": 2},
            "connections": ["c1", "c2"],
        }

    async def test_handler_stopped_when_stream_gives_up(self, manager):
        with patch("src.ha.stream_manager.HAEventStream", side_effect=_stream_that_gives_up):
            await manager.start("c1", "http://ha.local:8123", "bad-token")
        managed = manager._streams["c1"]

        for _ in range(5):
            await asyncio.sleep(0)

        managed.handler.stop.assert_awaited_once()
        assert manager.is_running("c1") is False
        assert manager.state("c1") == ConnectionState.AUTH_FAILED

    async def test_explicit_stop_does_not_stop_handler_twice(self, manager):
        with patch("src.ha.stream_manager.HAEventStream", side_effect=_stream_that_gives_up):
            await manager.start("c1", "http://ha.local:8123", "tok")
        managed = manager._streams["c1"]

        await manager.stop("c1")
        for _ in range(5):
            await asyncio.sleep(0)

        managed.handler.stop.assert_awaited_once()

    async def test_stop_all(self, manager):
        await manager.start("c1", "http://a:8123", "tok")
        await manager.start("c2", "http://b:8123", "tok")
        await manager.stop_all()
        assert manager.stats["streams"] == 0


def test_singleton():
    reset_stream_manager()
    try:
        assert get_stream_manager() is get_stream_manager()
    finally:
        reset_stream_manager()
