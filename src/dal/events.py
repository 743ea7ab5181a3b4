"""Home Assistant event repository."""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select

from src.dal.base import BaseRepository
from src.storage.entities.event import HAEvent


class EventRepository(BaseRepository[HAEvent]):
    """Repository for stored HA events."""

    model = HAEvent
    order_by_field = "timestamp"
    order_desc = True

    async def add_many(self, events: list[HAEvent]) -> int:
        """Insert a batch of events with a single flush."""
        if not events:
            return 0
        self.session.add_all(events)
        await self.session.flush()
        return len(events)

    async def list_for_connection(
        self,
        connection_id: str,
        limit: int = 50,
        offset: int = 0,
        event_type: str | None = None,
        entity_id: str | None = None,
    ) -> tuple[list[HAEvent], int]:
        """Page through a connection's events, newest first."""
        return await self.paginate(
            limit=limit,
            offset=offset,
            connection_id=connection_id,
            event_type=event_type,
            entity_id=entity_id,
        )

    async def recent(self, connection_id: str, limit: int = 100) -> list[HAEvent]:
        """Most recent events of a connection."""
        return await self.list_all(limit=limit, connection_id=connection_id)

    async def rate_stats(self, connection_id: str, start: datetime, end: datetime) -> dict[str, int]:
        """Event count, error-type count and busiest-minute count in a window.

        Aggregated in SQL; the per-minute peak groups on ``date_trunc('minute')``.
        """
        window = (
            HAEvent.connection_id == connection_id,
            HAEvent.timestamp >= start,
            HAEvent.timestamp <= end,
        )
        totals = await self.session.execute(
            select(
                func.count(HAEvent.id).label("events"),
                func.count(HAEvent.id).filter(HAEvent.event_type.ilike("%error%")).label("errors"),
            ).where(*window)
        )
        row = totals.one()

        per_minute = (
            select(func.count(HAEvent.id).label("events"))
            .where(*window)
            .group_by(func.date_trunc("minute", HAEvent.timestamp))
            .subquery()
        )
        peak = await self.session.execute(select(func.coalesce(func.max(per_minute.c.events), 0)))

        return {
            "event_count": row.events or 0,
            "error_count": row.errors or 0,
            "peak_per_minute": peak.scalar() or 0,
        }

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Delete events older than ``cutoff``. Returns the number removed."""
        result = await self.session.execute(delete(HAEvent).where(HAEvent.timestamp < cutoff))
        return result.rowcount or 0

    @staticmethod
    def summarize(events: list[HAEvent]) -> dict[str, Any]:
        """Counts by domain, entity and event type plus the covered time span."""
        by_domain: dict[str, int] = {}
        by_entity: dict[str, int] = {}
        by_type: dict[str, int] = {}
        for event in events:
            by_type[event.event_type] = by_type.get(event.event_type, 0) + 1
            if event.entity_id:
                by_entity[event.entity_id] = by_entity.get(event.entity_id, 0) + 1
            if event.domain:
                by_domain[event.domain] = by_domain.get(event.domain, 0) + 1

        timestamps = [e.timestamp for e in events if e.timestamp is not None]
        return {
            "total": len(events),
            "by_domain": by_domain,
            "by_entity": by_entity,
            "by_event_type": by_type,
            "first": min(timestamps).isoformat() if timestamps else None,
            "last": max(timestamps).isoformat() if timestamps else None,
        }
