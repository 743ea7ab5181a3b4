"""Connection metric and audit log entity models."""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, ConnectionScopedMixin, UUIDMixin, utcnow


class ConnectionMetric(Base, UUIDMixin, ConnectionScopedMixin):
    """A single numeric measurement for a connection.

    Known metric types: ``latency`` (ms), ``downtime_seconds``,
    ``uptime_seconds``.
    """

    __tablename__ = "connection_metric"
    __table_args__ = (
        Index("ix_connection_metric_lookup", "connection_id", "metric_type", "timestamp"),
    )

    metric_type: Mapped[str] = mapped_column(String(50), nullable=False)
    metric_value: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<ConnectionMetric(type={self.metric_type!r}, value={self.metric_value})>"


class ConnectionAuditLog(Base, UUIDMixin, ConnectionScopedMixin):
    """Audit trail entry for an operation performed on a connection."""

    __tablename__ = "connection_audit_log"
    __table_args__ = (
        Index("ix_connection_audit_log_connection_timestamp", "connection_id", "timestamp"),
    )

    action: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="CONNECT, TEST, DISCONNECT, ...",
    )
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<ConnectionAuditLog(action={self.action!r}, success={self.success})>"
