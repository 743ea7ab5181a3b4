"""Automation backup entity model."""

import enum
import hashlib
import json
from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, ConnectionScopedMixin, UUIDMixin, utcnow


class BackupType(enum.Enum):
    """Why a backup was taken."""

    FULL = "FULL"
    MANUAL = "MANUAL"
    AUTOMATIC = "AUTOMATIC"
    BEFORE_MODIFICATION = "BEFORE_MODIFICATION"


def canonical_json(data: Any) -> str:
    """Serialize ``data`` deterministically (sorted keys, no whitespace)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def compute_checksum(data: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``data``."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


class AutomationBackup(Base, UUIDMixin, ConnectionScopedMixin):
    """Snapshot of an automation's HA configuration."""

    __tablename__ = "automation_backup"
    __table_args__ = (
        Index("ix_automation_backup_automation_created", "managed_automation_id", "created_at"),
    )

    managed_automation_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("managed_automation.id", ondelete="CASCADE"),
        nullable=False,
    )
    backup_type: Mapped[BackupType] = mapped_column(nullable=False, default=BackupType.FULL)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    backup_data: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        doc="Automation config exactly as returned by HA",
    )
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    checksum: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="SHA-256 of the canonical JSON of backup_data",
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    @classmethod
    def from_config(
        cls,
        *,
        managed_automation_id: str,
        connection_id: str,
        config: dict[str, Any],
        backup_type: BackupType,
        description: str | None = None,
        created_by: str | None = None,
    ) -> "AutomationBackup":
        """Build a backup with size and checksum computed from ``config``."""
        return cls(
            managed_automation_id=managed_automation_id,
            connection_id=connection_id,
            backup_type=backup_type,
            description=description,
            backup_data=config,
            size_bytes=len(canonical_json(config).encode("utf-8")),
            checksum=compute_checksum(config),
            created_by=created_by,
            created_at=utcnow(),
        )

    def verify_integrity(self) -> bool:
        """Return True if the stored checksum still matches the data."""
        return compute_checksum(self.backup_data) == self.checksum

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<AutomationBackup(id={self.id!r}, type={self.backup_type.value!r})>"
