"""Automation retirement record entity model."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, ConnectionScopedMixin, TimestampMixin, UUIDMixin


class RetirementType(enum.Enum):
    """How an automation is retired."""

    IMMEDIATE = "IMMEDIATE"
    SCHEDULED = "SCHEDULED"
    GRADUAL = "GRADUAL"


class RetirementStatus(enum.Enum):
    """Outcome of a retirement request."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class AutomationRetirement(Base, UUIDMixin, TimestampMixin, ConnectionScopedMixin):
    """A retirement request and its outcome."""

    __tablename__ = "automation_retirement"
    __table_args__ = (
        Index("ix_automation_retirement_due", "status", "scheduled_at"),
    )

    managed_automation_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("managed_automation.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requested_by: Mapped[str] = mapped_column(String(255), nullable=False)
    retirement_type: Mapped[RetirementType] = mapped_column(nullable=False)
    status: Mapped[RetirementStatus] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    force: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When a SCHEDULED/GRADUAL retirement becomes due",
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    backup_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("automation_backup.id", ondelete="SET NULL"),
        nullable=True,
    )
    replacement_automation_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("managed_automation.id", ondelete="SET NULL"),
        nullable=True,
    )
    resolved_dependencies: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB, nullable=True)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<AutomationRetirement(type={self.retirement_type.value!r}, "
            f"status={self.status.value!r})>"
        )
