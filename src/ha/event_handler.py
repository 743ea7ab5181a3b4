"""Event handler for HA state_changed events.

Receives converted events from an :class:`HAEventStream`, queues them, and
on a configurable interval runs them through the :class:`EventProcessor`
and batch-inserts the kept ones.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from src.ha.event_processor import EventProcessor, get_event_processor

if TYPE_CHECKING:
    from src.ha.event_stream import HomeAssistantEvent

logger = logging.getLogger(__name__)

_DEFAULT_BATCH_INTERVAL = 1.5  # seconds
_DEFAULT_QUEUE_SIZE = 1000


class EventHandler:
    """Batched persistence of one connection's events.

    Events are queued in a bounded queue (the oldest event is dropped when
    it is full) and flushed to the DB every ``batch_interval`` seconds.
    A failed flush keeps the already-filtered events for the next attempt;
    the backlog never exceeds ``queue_size`` and the oldest events go first.
    """

    def __init__(
        self,
        connection_id: str,
        user_id: str | None = None,
        *,
        processor: EventProcessor | None = None,
        batch_interval: float = _DEFAULT_BATCH_INTERVAL,
        queue_size: int = _DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.connection_id = connection_id
        self.user_id = user_id
        self._processor = processor or get_event_processor()
        self._batch_interval = batch_interval
        self._max_backlog = queue_size
        self._queue: asyncio.Queue[HomeAssistantEvent] = asyncio.Queue(maxsize=queue_size)
        # Drained from the queue, not yet filtered.
        self._pending: list[HomeAssistantEvent] = []
        # Filtered and kept, waiting for a successful insert.
        self._retry: list[HomeAssistantEvent] = []
        self._running = False
        self._flush_task: asyncio.Task[None] | None = None
        self._events_received = 0
        self._events_flushed = 0
        self._events_dropped = 0

    async def handle_event(self, event: HomeAssistantEvent) -> None:
        """Receive an event and queue it for processing."""
        try:
            self._queue.put_nowait(event)
            self._events_received += 1
        except asyncio.QueueFull:
            logger.warning("Event queue full, dropping oldest event")
            try:
                self._queue.get_nowait()
                self._events_dropped += 1
                self._queue.put_nowait(event)
                self._events_received += 1
            except asyncio.QueueEmpty:
                pass

    async def start(self) -> None:
        """Start the flush loop."""
        self._running = True
        self._flush_task = asyncio.create_task(self._flush_loop())

    async def stop(self) -> None:
        """Stop the flush loop and flush remaining events."""
        self._running = False
        if self._flush_task and not self._flush_task.done():
            self._flush_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task
        self._drain_queue()
        if self._has_backlog:
            await self.flush()

    @property
    def _has_backlog(self) -> bool:
        return bool(self._pending or self._retry)

    async def _flush_loop(self) -> None:
        """Periodically drain the queue and flush to DB."""
        while self._running:
            await asyncio.sleep(self._batch_interval)
            self._drain_queue()
            if self._has_backlog:
                await self.flush()

    def _drain_queue(self) -> None:
        while not self._queue.empty():
            try:
                self._pending.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        self._trim_backlog()

    def _trim_backlog(self) -> None:
        """Drop the oldest backlog events beyond ``queue_size``."""
        excess = len(self._retry) + len(self._pending) - self._max_backlog
        if excess <= 0:
            return
        logger.warning(
            "Event backlog for %s full, dropping %d oldest events", self.connection_id, excess
        )
        self._events_dropped += excess
        from_retry = min(excess, len(self._retry))
        del self._retry[:from_retry]
        del self._pending[: excess - from_retry]

    async def flush(self) -> int:
        """Filter and insert pending events in one session.

        Returns:
            Number of events stored.
        """
        if not self._has_backlog:
            return 0

        batch = list(self._pending)
        self._pending.clear()
        kept = list(self._retry)
        self._retry.clear()

        try:
            from src.dal.connections import ConnectionRepository
            from src.dal.events import EventRepository
            from src.dal.filter_rules import FilterRuleRepository
            from src.storage import get_session
            from src.storage.entities.event import HAEvent

            async with get_session() as session:
                if batch:
                    rules = await FilterRuleRepository(session).enabled_for_connection(
                        self.connection_id, self.user_id
                    )
                    kept.extend(
                        event for event in batch if self._processor.should_store(event, rules)
                    )
                    batch = []
                now = datetime.now(UTC)
                rows = [
                    HAEvent(
                        connection_id=self.connection_id,
                        event_type=event.event_type,
                        entity_id=event.entity_id,
                        old_state=event.old_state,
                        new_state=event.new_state,
                        attributes=event.attributes,
                        timestamp=event.timestamp,
                        processed_at=now,
                    )
                    for event in kept
                ]
                stored = await EventRepository(session).add_many(rows)
                await ConnectionRepository(session).touch_last_seen(self.connection_id, now)
                await session.commit()

            self._events_flushed += stored
            logger.debug(
                "Event flush for %s: %d kept, %d stored",
                self.connection_id,
                len(kept),
                stored,
            )
            return stored

        except Exception:
            logger.exception("Failed to flush %d events to DB", len(kept) + len(batch))
            self._retry[:0] = kept
            self._pending[:0] = batch
            self._trim_backlog()
            return 0

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "events_received": self._events_received,
            "events_flushed": self._events_flushed,
            "events_dropped": self._events_dropped,
            "pending": len(self._pending) + len(self._retry),
            "queue_size": self._queue.qsize(),
        }


__all__ = ["EventHandler"]
