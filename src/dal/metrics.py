"""Connection metric and audit log repositories."""

from datetime import datetime

from sqlalchemy import func, select

from src.dal.base import BaseRepository
from src.storage.entities.connection_metric import ConnectionAuditLog, ConnectionMetric


class ConnectionMetricRepository(BaseRepository[ConnectionMetric]):
    """Repository for per-connection numeric metrics."""

    model = ConnectionMetric
    order_by_field = "timestamp"
    order_desc = True

    async def record(
        self,
        connection_id: str,
        metric_type: str,
        value: float,
        when: datetime | None = None,
    ) -> ConnectionMetric:
        data = {
            "connection_id": connection_id,
            "metric_type": metric_type,
            "metric_value": value,
        }
        if when is not None:
            data["timestamp"] = when
        return await self.create(data)

    async def average(
        self, connection_id: str, metric_type: str, start: datetime, end: datetime
    ) -> float | None:
        """Mean value of a metric type in a window (None when there are no samples)."""
        result = await self.session.execute(
            select(func.avg(ConnectionMetric.metric_value)).where(
                ConnectionMetric.connection_id == connection_id,
                ConnectionMetric.metric_type == metric_type,
                ConnectionMetric.timestamp >= start,
                ConnectionMetric.timestamp <= end,
            )
        )
        value = result.scalar()
        return float(value) if value is not None else None

    async def total(
        self, connection_id: str, metric_type: str, start: datetime, end: datetime
    ) -> float:
        """Sum of a metric type in a window (0.0 when there are no samples)."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(ConnectionMetric.metric_value), 0.0)).where(
                ConnectionMetric.connection_id == connection_id,
                ConnectionMetric.metric_type == metric_type,
                ConnectionMetric.timestamp >= start,
                ConnectionMetric.timestamp <= end,
            )
        )
        return float(result.scalar() or 0.0)


class AuditLogRepository(BaseRepository[ConnectionAuditLog]):
    """Repository for the connection audit trail."""

    model = ConnectionAuditLog
    order_by_field = "timestamp"
    order_desc = True

    async def log(
        self,
        connection_id: str,
        action: str,
        *,
        success: bool = True,
        details: dict | None = None,
        error_message: str | None = None,
        duration_ms: int | None = None,
    ) -> ConnectionAuditLog:
        return await self.create(
            {
                "connection_id": connection_id,
                "action": action,
                "success": success,
                "details": details,
                "error_message": error_message,
                "duration_ms": duration_ms,
            }
        )

    async def list_for_connection(
        self, connection_id: str, limit: int = 50, offset: int = 0
    ) -> tuple[list[ConnectionAuditLog], int]:
        return await self.paginate(limit=limit, offset=offset, connection_id=connection_id)
