"""Home Assistant event entity model."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, ConnectionScopedMixin, UUIDMixin, utcnow


class HAEvent(Base, UUIDMixin, ConnectionScopedMixin):
    """An event received from a Home Assistant event bus and kept by the filter."""

    __tablename__ = "ha_event"
    __table_args__ = (
        Index("ix_ha_event_connection_timestamp", "connection_id", "timestamp"),
        Index("ix_ha_event_connection_type", "connection_id", "event_type"),
        Index("ix_ha_event_connection_entity", "connection_id", "entity_id"),
    )

    event_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="HA event type (state_changed, call_service, ...)",
    )
    entity_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="Entity the event refers to, when there is one",
    )
    old_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    attributes: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB,
        nullable=True,
        doc="Attributes of the new state",
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="When HA fired the event (time_fired)",
    )
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        doc="When the event passed the filter and was stored",
    )

    @property
    def domain(self) -> str | None:
        """Entity domain (``light`` for ``light.kitchen``)."""
        if self.entity_id and "." in self.entity_id:
            return self.entity_id.split(".", 1)[0]
        return None

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<HAEvent(type={self.event_type!r}, entity={self.entity_id!r})>"
