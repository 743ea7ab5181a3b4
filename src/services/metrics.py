"""Per-connection health and throughput metrics."""

from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.dal.connections import ConnectionRepository
from src.dal.events import EventRepository
from src.dal.metrics import ConnectionMetricRepository
from src.exceptions import NotFoundError, ValidationError

TIME_RANGES: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "1m": timedelta(days=30),
}
DEFAULT_TIME_RANGE = "24h"


def parse_time_range(time_range: str | None) -> timedelta:
    """Map a range label to its duration.

    Raises:
        ValidationError: For an unknown label.
    """
    key = time_range or DEFAULT_TIME_RANGE
    if key not in TIME_RANGES:
        raise ValidationError(
            f"Invalid time range: {key}",
            errors=[f"time_range must be one of {', '.join(TIME_RANGES)}"],
        )
    return TIME_RANGES[key]


class MetricsService:
    """Computes connection metrics over a time range."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.connections = ConnectionRepository(session)
        self.events = EventRepository(session)
        self.metrics = ConnectionMetricRepository(session)

    async def get_metrics(
        self,
        user_id: str,
        connection_id: str,
        time_range: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        span = parse_time_range(time_range)
        conn = await self.connections.get_for_user(connection_id, user_id)
        if conn is None:
            raise NotFoundError("Connection", connection_id)

        end = now or datetime.now(UTC)
        start = end - span
        rates = await self.events.rate_stats(conn.id, start, end)
        event_count = rates["event_count"]

        total_seconds = span.total_seconds()
        downtime = await self.metrics.total(conn.id, "downtime_seconds", start, end)
        uptime = 100.0 - downtime / total_seconds * 100.0
        uptime = max(0.0, min(100.0, uptime))

        return {
            "connection_id": conn.id,
            "time_range": time_range or DEFAULT_TIME_RANGE,
            "start": start,
            "end": end,
            "event_count": event_count,
            "average_latency": await self.metrics.average(conn.id, "latency", start, end),
            "uptime_percentage": round(uptime, 2),
            "error_rate": round(rates["error_count"] / event_count * 100, 2) if event_count else 0.0,
            "average_event_rate": round(event_count / (total_seconds / 60), 4),
            "peak_event_rate": rates["peak_per_minute"],
        }
