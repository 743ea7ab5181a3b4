"""Managed automation entity models.

A managed automation is a Home Assistant automation whose lifecycle is
tracked here: every state change is appended to the lifecycle history.

State machine:
    PENDING -> ACTIVE <-> INACTIVE
       |          |          |
       +----------+----------+--> RETIRED (terminal)
"""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.exceptions import LifecycleError
from src.storage.models import Base, ConnectionScopedMixin, TimestampMixin, UUIDMixin, utcnow


class LifecycleState(enum.Enum):
    """Lifecycle state of a managed automation."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    RETIRED = "RETIRED"


LIFECYCLE_TRANSITIONS: dict[LifecycleState, set[LifecycleState]] = {
    LifecycleState.PENDING: {LifecycleState.ACTIVE, LifecycleState.RETIRED},
    LifecycleState.ACTIVE: {LifecycleState.INACTIVE, LifecycleState.RETIRED},
    LifecycleState.INACTIVE: {LifecycleState.ACTIVE, LifecycleState.RETIRED},
    LifecycleState.RETIRED: set(),  # Terminal state
}


class ManagedAutomation(Base, UUIDMixin, TimestampMixin, ConnectionScopedMixin):
    """A Home Assistant automation under lifecycle management."""

    __tablename__ = "managed_automation"
    __table_args__ = (
        UniqueConstraint(
            "connection_id",
            "ha_automation_id",
            name="uq_managed_automation_connection_ha_id",
        ),
        Index("ix_managed_automation_state", "lifecycle_state", "is_active"),
    )

    ha_automation_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Automation id in HA's config API (/api/config/automation/config/{id})",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    lifecycle_state: Mapped[LifecycleState] = mapped_column(
        default=LifecycleState.ACTIVE,
        nullable=False,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Incremented on every modification or rollback",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    execution_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_execution_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    modified_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def entity_id(self) -> str:
        """HA entity id of the automation."""
        return f"automation.{self.ha_automation_id}"

    def can_transition_to(self, new_state: LifecycleState) -> bool:
        """Check if transition to new state is valid."""
        return new_state in LIFECYCLE_TRANSITIONS.get(self.lifecycle_state, set())

    def transition_to(
        self,
        new_state: LifecycleState,
        *,
        reason: str | None = None,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "AutomationLifecycleHistory":
        """Change state and return the history row describing the change.

        The caller is responsible for adding the returned row to the session.

        Raises:
            LifecycleError: If the transition is not allowed.
        """
        if not self.can_transition_to(new_state):
            raise LifecycleError(
                f"Cannot move automation {self.ha_automation_id} from "
                f"{self.lifecycle_state.value} to {new_state.value}"
            )
        previous = self.lifecycle_state
        self.lifecycle_state = new_state
        self.is_active = new_state == LifecycleState.ACTIVE
        if user_id:
            self.modified_by = user_id
        return AutomationLifecycleHistory(
            managed_automation_id=self.id,
            previous_state=previous.value,
            new_state=new_state.value,
            transition_reason=reason,
            transitioned_by=user_id,
            transition_timestamp=utcnow(),
            metadata_=metadata,
        )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<ManagedAutomation(ha_id={self.ha_automation_id!r}, "
            f"state={self.lifecycle_state.value!r}, version={self.version})>"
        )


class AutomationLifecycleHistory(Base, UUIDMixin):
    """Audit trail row for one lifecycle state change."""

    __tablename__ = "automation_lifecycle_history"
    __table_args__ = (
        Index(
            "ix_lifecycle_history_automation_timestamp",
            "managed_automation_id",
            "transition_timestamp",
        ),
    )

    managed_automation_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("managed_automation.id", ondelete="CASCADE"),
        nullable=False,
    )
    previous_state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    new_state: Mapped[str] = mapped_column(String(50), nullable=False)
    transition_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    transitioned_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    transition_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
    )
