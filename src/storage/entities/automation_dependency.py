"""Automation dependency entity model.

``source`` depends on ``target``: retiring the target affects the source.
"""

import enum

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, ConnectionScopedMixin, TimestampMixin, UUIDMixin


class DependencyType(enum.Enum):
    """Where in the dependent automation the reference appears."""

    TRIGGER = "TRIGGER"
    CONDITION = "CONDITION"
    ACTION = "ACTION"


class DependencyStrength(enum.Enum):
    """How hard a dependency is. Only STRONG blocks retirement."""

    STRONG = "STRONG"
    WEAK = "WEAK"
    OPTIONAL = "OPTIONAL"


class AutomationDependency(Base, UUIDMixin, TimestampMixin, ConnectionScopedMixin):
    """Directed edge between two managed automations."""

    __tablename__ = "automation_dependency"
    __table_args__ = (
        Index("ix_automation_dependency_target_active", "target_automation_id", "active"),
        Index("ix_automation_dependency_source_active", "source_automation_id", "active"),
    )

    source_automation_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("managed_automation.id", ondelete="CASCADE"),
        nullable=False,
        doc="The dependent automation",
    )
    target_automation_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("managed_automation.id", ondelete="CASCADE"),
        nullable=False,
        doc="The automation being depended on",
    )
    dependency_type: Mapped[DependencyType] = mapped_column(nullable=False)
    strength: Mapped[DependencyStrength] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_resolvable(self) -> bool:
        """WEAK and OPTIONAL dependencies can be dropped on retirement."""
        return self.strength in (DependencyStrength.WEAK, DependencyStrength.OPTIONAL)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<AutomationDependency({self.source_automation_id!r} -> "
            f"{self.target_automation_id!r}, {self.strength.value})>"
        )
