"""Persistent WebSocket subscription to a Home Assistant event bus.

Maintains one connection per stored HA connection, subscribing to
``state_changed`` events, converting them to :class:`HomeAssistantEvent`
records and dispatching them to a handler.  Sends periodic pings and
reconnects with exponential backoff on connection loss.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import connect as ws_connect

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

from src.exceptions import HAClientError
from src.ha.websocket import ConnectionState, _authenticate

logger = logging.getLogger(__name__)

_BACKOFF_MAX = 60.0
_BACKOFF_FACTOR = 2.0


@dataclass
class HomeAssistantEvent:
    """A state change received from Home Assistant."""

    event_type: str
    entity_id: str | None = None
    old_state: str | None = None
    new_state: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    connection_id: str | None = None

    @property
    def domain(self) -> str | None:
        if self.entity_id and "." in self.entity_id:
            return self.entity_id.split(".", 1)[0]
        return None

    @classmethod
    def from_ha(cls, event: dict[str, Any], connection_id: str | None = None) -> HomeAssistantEvent:
        """Build from the ``event`` object of an HA ``event`` message."""
        data = event.get("data") or {}
        old = data.get("old_state") or {}
        new = data.get("new_state") or {}
        return cls(
            event_type=event.get("event_type", "unknown"),
            entity_id=data.get("entity_id"),
            old_state=old.get("state") if old else None,
            new_state=new.get("state") if new else None,
            attributes=dict(new.get("attributes") or {}) if new else {},
            timestamp=_parse_time(event.get("time_fired")),
            connection_id=connection_id,
        )


def _parse_time(value: str | None) -> datetime:
    if value:
        try:
            parsed = datetime.fromisoformat(value)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        except ValueError:
            logger.debug("Unparseable time_fired %r", value)
    return datetime.now(UTC)


class HAEventStream:
    """Persistent WebSocket subscription to HA state_changed events.

    Usage::

        stream = HAEventStream(ws_url, token, handler=my_handler, connection_id=conn.id)
        stream.start_task()
        # ... later ...
        await stream.stop()
    """

    def __init__(
        self,
        ws_url: str,
        token: str,
        handler: Callable[[HomeAssistantEvent], Awaitable[None]],
        *,
        connection_id: str | None = None,
        heartbeat_interval: float = 30.0,
        reconnect_delay: float = 5.0,
        max_reconnect_attempts: int = 10,
    ) -> None:
        self._ws_url = ws_url
        self._token = token
        self._handler = handler
        self.connection_id = connection_id
        self._heartbeat_interval = heartbeat_interval
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._message_id = 0
        self.state = ConnectionState.DISCONNECTED
        self.reconnect_attempts = 0
        self.last_seen: datetime | None = None
        self.last_error: str | None = None
        self.events_received = 0

    def _next_id(self) -> int:
        self._message_id += 1
        return self._message_id

    def _touch(self) -> None:
        self.last_seen = datetime.now(UTC)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt number ``attempt`` (1-based)."""
        return min(self._reconnect_delay * _BACKOFF_FACTOR ** (attempt - 1), _BACKOFF_MAX)

    async def run(self) -> None:
        """Main event loop with reconnection."""
        self._running = True
        while self._running:
            try:
                await self._connect_and_subscribe()
                if not self._running:
                    break
                # Server closed the socket cleanly; treat as a lost connection.
                raise ConnectionError("WebSocket closed by server")
            except asyncio.CancelledError:
                break
            except HAClientError as exc:
                if exc.tool == "ws_auth_invalid":
                    self.state = ConnectionState.AUTH_FAILED
                    self.last_error = str(exc)
                    self._running = False
                    logger.error("Event stream authentication failed for %s", self._ws_url)
                    break
                if not await self._schedule_reconnect(exc):
                    break
            except Exception as exc:
                if not self._running:
                    break
                if not await self._schedule_reconnect(exc):
                    break
        if self.state not in (ConnectionState.AUTH_FAILED, ConnectionState.ERROR):
            self.state = ConnectionState.DISCONNECTED

    async def _schedule_reconnect(self, exc: BaseException) -> bool:
        """Sleep before the next attempt. Returns False once attempts are exhausted."""
        self.last_error = str(exc) or type(exc).__name__
        self.reconnect_attempts += 1
        if self.reconnect_attempts >= self._max_reconnect_attempts:
            self.state = ConnectionState.ERROR
            self._running = False
            logger.error(
                "Event stream for %s gave up after %d attempts",
                self._ws_url,
                self._max_reconnect_attempts,
            )
            return False
        delay = self.backoff_delay(self.reconnect_attempts)
        self.state = ConnectionState.DISCONNECTED
        logger.warning(
            "Event stream disconnected (%s), reconnect %d/%d in %.1fs",
            self.last_error,
            self.reconnect_attempts,
            self._max_reconnect_attempts,
            delay,
        )
        await asyncio.sleep(delay)
        return self._running

    async def _connect_and_subscribe(self) -> None:
        """Connect, authenticate, subscribe, and process events."""
        self.state = ConnectionState.CONNECTING
        async with ws_connect(self._ws_url) as ws:
            self.state = ConnectionState.AUTH_REQUIRED
            await _authenticate(ws, self._token)
            self.state = ConnectionState.AUTHENTICATED
            self.reconnect_attempts = 0
            self.last_error = None
            self._touch()
            logger.info("Event stream connected and authenticated")

            subscribe_id = self._next_id()
            await ws.send(
                json.dumps(
                    {"id": subscribe_id, "type": "subscribe_events", "event_type": "state_changed"}
                )
            )
            msg = json.loads(await ws.recv())
            if not msg.get("success"):
                raise HAClientError("Failed to subscribe to events", tool="event_stream")
            self.state = ConnectionState.CONNECTED
            logger.info("Subscribed to state_changed events")

            heartbeat = asyncio.create_task(self._heartbeat(ws))
            try:
                async for raw_msg in ws:
                    if not self._running:
                        break
                    await self._dispatch(raw_msg)
            finally:
                heartbeat.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await heartbeat

    async def _dispatch(self, raw_msg: str | bytes) -> None:
        try:
            msg = json.loads(raw_msg)
        except json.JSONDecodeError:
            logger.warning("Failed to decode event: %s", str(raw_msg)[:200])
            return
        self._touch()
        if msg.get("type") != "event":
            return
        try:
            event = HomeAssistantEvent.from_ha(msg.get("event", {}), self.connection_id)
            self.events_received += 1
            await self._handler(event)
        except Exception:
            logger.exception("Error processing event")

    async def _heartbeat(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            await ws.send(json.dumps({"id": self._next_id(), "type": "ping"}))

    async def stop(self) -> None:
        """Stop the event stream."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        if self.state not in (ConnectionState.AUTH_FAILED, ConnectionState.ERROR):
            self.state = ConnectionState.DISCONNECTED
        logger.info("Event stream stopped")

    def start_task(self) -> asyncio.Task[None]:
        """Start the event stream as a background task."""
        self._task = asyncio.create_task(self.run())
        return self._task

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "reconnect_attempts": self.reconnect_attempts,
            "events_received": self.events_received,
            "last_error": self.last_error,
        }


__all__ = ["HAEventStream", "HomeAssistantEvent"]
