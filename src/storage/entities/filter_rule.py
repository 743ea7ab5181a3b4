"""Event filtering rule entity model.

User-defined rules evaluated (ascending priority) before the built-in
event filter heuristics.
"""

import enum
from datetime import datetime
from fnmatch import fnmatchcase
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, TimestampMixin, UUIDMixin


class RuleType(enum.Enum):
    """Category of a filtering rule (informational, used for statistics)."""

    INCLUDE = "INCLUDE"
    EXCLUDE = "EXCLUDE"
    FREQUENCY = "FREQUENCY"
    PATTERN = "PATTERN"
    ENTITY = "ENTITY"
    STATE_CHANGE = "STATE_CHANGE"
    CUSTOM = "CUSTOM"


class RuleAction(enum.Enum):
    """What happens to an event the rule matches."""

    ALLOW = "ALLOW"
    BLOCK = "BLOCK"
    THROTTLE = "THROTTLE"
    BATCH = "BATCH"
    PRIORITY = "PRIORITY"
    LOG_ONLY = "LOG_ONLY"


# Keys of ``conditions`` that are compared against the event
CONDITION_KEYS = ("domain", "entity_id", "old_state", "new_state")


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class EventFilterRule(Base, UUIDMixin, TimestampMixin):
    """A user-defined event filtering rule."""

    __tablename__ = "event_filter_rule"
    __table_args__ = (
        UniqueConstraint("user_id", "rule_name", name="uq_event_filter_rule_user_name"),
        Index("ix_event_filter_rule_user_priority", "user_id", "priority"),
    )

    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    connection_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("ha_connection.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        doc="Restrict the rule to one connection (null = all of the user's connections)",
    )
    rule_name: Mapped[str] = mapped_column(String(255), nullable=False)
    rule_type: Mapped[RuleType] = mapped_column(nullable=False)
    action: Mapped[RuleAction] = mapped_column(nullable=False)
    conditions: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        doc="Exact-match conditions on domain, entity_id, old_state, new_state",
    )
    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=100,
        doc="Lower value is evaluated first",
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_types: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Comma-separated event types (null = any)",
    )
    entity_patterns: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Comma-separated glob patterns on entity_id (null = any)",
    )
    frequency_limit: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        doc="THROTTLE: events kept per entity within the time window",
    )
    time_window_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    match_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_matched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def event_type_list(self) -> list[str]:
        return _split_csv(self.event_types)

    @property
    def entity_pattern_list(self) -> list[str]:
        return _split_csv(self.entity_patterns)

    def matches(
        self,
        event_type: str,
        entity_id: str | None,
        old_state: str | None,
        new_state: str | None,
    ) -> bool:
        """Return True if the event satisfies every clause of this rule."""
        types = self.event_type_list
        if types and event_type not in types:
            return False

        patterns = self.entity_pattern_list
        if patterns and not (entity_id and any(fnmatchcase(entity_id, p) for p in patterns)):
            return False

        observed = {
            "domain": entity_id.split(".", 1)[0] if entity_id and "." in entity_id else None,
            "entity_id": entity_id,
            "old_state": old_state,
            "new_state": new_state,
        }
        for key, expected in (self.conditions or {}).items():
            if key in CONDITION_KEYS and observed[key] != expected:
                return False
        return True

    def record_match(self, when: datetime) -> None:
        """Increment the match counter."""
        self.match_count = (self.match_count or 0) + 1
        self.last_matched_at = when

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<EventFilterRule(name={self.rule_name!r}, action={self.action.value!r}, "
            f"priority={self.priority})>"
        )
