"""Owns one event stream plus event handler per connected HA connection."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from src.ha.event_handler import EventHandler
from src.ha.event_stream import HAEventStream
from src.ha.websocket import ConnectionState, build_ws_url
from src.settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class _ManagedStream:
    stream: HAEventStream
    handler: EventHandler


class StreamManager:
    """Registry of running event streams keyed by connection id."""

    def __init__(self) -> None:
        self._streams: dict[str, _ManagedStream] = {}
        self._lock = asyncio.Lock()
        self._exit_tasks: set[asyncio.Task[None]] = set()

    async def start(self, connection_id: str, url: str, token: str, user_id: str | None = None) -> None:
        """Start (or restart) the stream of a connection."""
        settings = get_settings()
        async with self._lock:
            existing = self._streams.pop(connection_id, None)
            if existing is not None:
                await self._shutdown(existing)

            handler = EventHandler(
                connection_id,
                user_id,
                batch_interval=settings.event_batch_interval,
                queue_size=settings.event_queue_size,
            )
            stream = HAEventStream(
                build_ws_url(url),
                token,
                handler.handle_event,
                connection_id=connection_id,
                heartbeat_interval=settings.websocket_heartbeat_interval,
                reconnect_delay=settings.websocket_reconnect_delay,
                max_reconnect_attempts=settings.websocket_max_reconnect_attempts,
            )
            managed = _ManagedStream(stream=stream, handler=handler)
            await handler.start()
            task = stream.start_task()
            task.add_done_callback(lambda _t: self._on_stream_exit(connection_id, managed))
            self._streams[connection_id] = managed
        logger.info("Started event stream for connection %s", connection_id)

    async def stop(self, connection_id: str) -> bool:
        """Stop a connection's stream. Returns False if none was running."""
        async with self._lock:
            managed = self._streams.pop(connection_id, None)
        if managed is None:
            return False
        await self._shutdown(managed)
        logger.info("Stopped event stream for connection %s", connection_id)
        return True

    async def stop_all(self) -> None:
        async with self._lock:
            streams = list(self._streams.values())
            self._streams.clear()
        for managed in streams:
            await self._shutdown(managed)

    def _on_stream_exit(self, connection_id: str, managed: _ManagedStream) -> None:
        """Stop the handler of a stream that gave up on its own.

        The entry stays registered so its final state remains visible.
        """
        if self._streams.get(connection_id) is not managed:
            return
        logger.warning(
            "Event stream for connection %s ended in state %s",
            connection_id,
            managed.stream.state.value,
        )
        task = asyncio.create_task(managed.handler.stop())
        self._exit_tasks.add(task)
        task.add_done_callback(self._exit_tasks.discard)

    @staticmethod
    async def _shutdown(managed: _ManagedStream) -> None:
        await managed.stream.stop()
        await managed.handler.stop()

    def is_running(self, connection_id: str) -> bool:
        managed = self._streams.get(connection_id)
        return managed is not None and managed.stream.is_running

    def state(self, connection_id: str) -> ConnectionState | None:
        managed = self._streams.get(connection_id)
        return managed.stream.state if managed else None

    def status(self, connection_id: str) -> dict[str, Any] | None:
        """Live WebSocket state plus stream and handler stats, or None."""
        managed = self._streams.get(connection_id)
        if managed is None:
            return None
        return {
            "running": managed.stream.is_running,
            **managed.stream.stats,
            "handler": managed.handler.stats,
        }

    @property
    def stats(self) -> dict[str, Any]:
        by_state: dict[str, int] = {}
        for managed in self._streams.values():
            key = managed.stream.state.value
            by_state[key] = by_state.get(key, 0) + 1
        return {
            "streams": len(self._streams),
            "by_state": by_state,
            "connections": sorted(self._streams),
        }


_manager: StreamManager | None = None


def get_stream_manager() -> StreamManager:
    global _manager
    if _manager is None:
        _manager = StreamManager()
    return _manager


def reset_stream_manager() -> None:
    global _manager
    _manager = None


__all__ = ["StreamManager", "get_stream_manager", "reset_stream_manager"]
