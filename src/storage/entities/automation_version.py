"""Automation version entity model."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, ConnectionScopedMixin, UUIDMixin, utcnow


class ModificationType(enum.Enum):
    """What produced a version."""

    CREATE = "CREATE"
    MODIFY = "MODIFY"
    ROLLBACK = "ROLLBACK"
    RETIRE = "RETIRE"


def format_version_number(sequence: int) -> str:
    """Human-readable version label (``v1.3`` for the third version)."""
    return f"v1.{sequence}"


class AutomationVersion(Base, UUIDMixin, ConnectionScopedMixin):
    """A numbered version of a managed automation, backed by a backup."""

    __tablename__ = "automation_version"
    __table_args__ = (
        Index("ix_automation_version_automation_sequence", "managed_automation_id", "sequence"),
    )

    managed_automation_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("managed_automation.id", ondelete="CASCADE"),
        nullable=False,
    )
    backup_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("automation_backup.id", ondelete="SET NULL"),
        nullable=True,
        doc="Backup holding the configuration of this version",
    )
    previous_version_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("automation_version.id", ondelete="SET NULL"),
        nullable=True,
    )
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="1-based position in the automation's history",
    )
    version_number: Mapped[str] = mapped_column(String(20), nullable=False)
    modification_type: Mapped[ModificationType] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<AutomationVersion(number={self.version_number!r}, "
            f"type={self.modification_type.value!r})>"
        )
