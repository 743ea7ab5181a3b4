"""Home Assistant connection entity model.

One row per (user, Home Assistant URL).  The long-lived access token is
stored Fernet-encrypted; see :mod:`src.dal.connections` for the cipher.
"""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, TimestampMixin, UUIDMixin


class ConnectionStatus(enum.Enum):
    """Persisted status of a Home Assistant connection."""

    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    ERROR = "ERROR"


class HAConnection(Base, UUIDMixin, TimestampMixin):
    """A user's connection to a Home Assistant instance."""

    __tablename__ = "ha_connection"
    __table_args__ = (
        UniqueConstraint("user_id", "url", name="uq_ha_connection_user_url"),
        Index("ix_ha_connection_user_status", "user_id", "status"),
    )

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="Authenticated identity that owns the connection",
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Human-readable connection name",
    )
    url: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        doc="Home Assistant base URL (e.g. http://homeassistant.local:8123)",
    )
    encrypted_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="HA long-lived access token, Fernet-encrypted",
    )
    status: Mapped[ConnectionStatus] = mapped_column(
        default=ConnectionStatus.DISCONNECTED,
        nullable=False,
        doc="CONNECTED, DISCONNECTED or ERROR",
    )
    home_assistant_version: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        doc="Version reported by the last successful connection test",
    )
    last_connected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    last_seen_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Last time any message was received from this instance",
    )
    connection_health: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB,
        nullable=True,
        doc="Result of the most recent connection test",
    )

    @property
    def websocket_url(self) -> str:
        """WebSocket API URL derived from the REST base URL."""
        from src.ha.websocket import build_ws_url

        return build_ws_url(self.url)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<HAConnection(name={self.name!r}, url={self.url!r}, "
            f"status={self.status.value!r})>"
        )
