"""AI suggestion entity models.

Suggestions are generated from recent events of a connection and must be
approved before they are implemented in Home Assistant.

State machine:
    PENDING -> APPROVED -> IMPLEMENTED -> ROLLED_BACK
       |          |
       v          v
    REJECTED    FAILED -> APPROVED
"""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.exceptions import LifecycleError
from src.storage.models import Base, ConnectionScopedMixin, UUIDMixin, utcnow


class SuggestionType(enum.Enum):
    """Kind of change an AI suggestion proposes."""

    AUTOMATION_OPTIMIZATION = "AUTOMATION_OPTIMIZATION"
    NEW_AUTOMATION = "NEW_AUTOMATION"
    SCHEDULE_ADJUSTMENT = "SCHEDULE_ADJUSTMENT"
    TRIGGER_REFINEMENT = "TRIGGER_REFINEMENT"


class SuggestionStatus(enum.Enum):
    """Status of an AI suggestion."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    IMPLEMENTED = "IMPLEMENTED"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"


SUGGESTION_TRANSITIONS: dict[SuggestionStatus, set[SuggestionStatus]] = {
    SuggestionStatus.PENDING: {SuggestionStatus.APPROVED, SuggestionStatus.REJECTED},
    SuggestionStatus.APPROVED: {SuggestionStatus.IMPLEMENTED, SuggestionStatus.FAILED},
    SuggestionStatus.IMPLEMENTED: {SuggestionStatus.ROLLED_BACK},
    SuggestionStatus.FAILED: {SuggestionStatus.APPROVED},
    SuggestionStatus.REJECTED: set(),
    SuggestionStatus.ROLLED_BACK: set(),
}


class ApprovalDecision(enum.Enum):
    """A user's decision on a suggestion."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DEFERRED = "DEFERRED"


class AISuggestion(Base, UUIDMixin, ConnectionScopedMixin):
    """An automation suggestion produced by the LLM."""

    __tablename__ = "ai_suggestion"
    __table_args__ = (
        Index("ix_ai_suggestion_connection_status", "connection_id", "status"),
        Index("ix_ai_suggestion_created_at", "created_at"),
    )

    suggestion_type: Mapped[SuggestionType] = mapped_column(nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    automation_config: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        doc="HA automation config (alias, trigger, condition, action, mode)",
    )
    confidence_score: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        doc="Model confidence, clamped to 0.0-1.0",
    )
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[SuggestionStatus] = mapped_column(
        default=SuggestionStatus.PENDING,
        nullable=False,
        index=True,
    )
    ha_automation_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="HA automation id once implemented",
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the suggestion was approved, rejected, implemented or failed",
    )

    def can_transition_to(self, new_status: SuggestionStatus) -> bool:
        """Check if transition to new status is valid."""
        return new_status in SUGGESTION_TRANSITIONS.get(self.status, set())

    def transition_to(self, new_status: SuggestionStatus) -> None:
        """Move to ``new_status`` and stamp ``processed_at``.

        Raises:
            LifecycleError: If the transition is not allowed.
        """
        if not self.can_transition_to(new_status):
            raise LifecycleError(
                f"Cannot move suggestion from {self.status.value} to {new_status.value}"
            )
        self.status = new_status
        self.processed_at = utcnow()

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<AISuggestion(title={self.title!r}, status={self.status.value!r})>"


class SuggestionApproval(Base, UUIDMixin):
    """A recorded decision on a suggestion."""

    __tablename__ = "ai_suggestion_approval"

    suggestion_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("ai_suggestion.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    decision: Mapped[ApprovalDecision] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    implemented_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rollback_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class SuggestionFeedback(Base, UUIDMixin):
    """User feedback on how well an implemented suggestion works."""

    __tablename__ = "ai_suggestion_feedback"

    suggestion_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("ai_suggestion.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    effectiveness_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    performance_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    feedback_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
