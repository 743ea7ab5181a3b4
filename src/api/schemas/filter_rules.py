"""Event filtering rule API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.storage.entities.filter_rule import RuleAction, RuleType


def _join_csv(value: Any) -> Any:
    if isinstance(value, list):
        return ",".join(str(v).strip() for v in value if str(v).strip()) or None
    return value


class FilterRuleBase(BaseModel):
    """Fields shared by create and update."""

    connection_id: str | None = Field(None, description="Limit the rule to one connection")
    description: str | None = None
    conditions: dict[str, Any] | None = Field(
        None,
        description="Exact-match conditions on domain, entity_id, old_state, new_state",
    )
    event_types: str | None = Field(None, description="Comma-separated event types (or a list)")
    entity_patterns: str | None = Field(None, description="Comma-separated entity globs (or a list)")
    frequency_limit: int | None = Field(None, ge=1)
    time_window_minutes: int | None = Field(None, ge=1, le=1440)

    _csv = field_validator("event_types", "entity_patterns", mode="before")(_join_csv)


class FilterRuleCreate(FilterRuleBase):
    """Create a filtering rule."""

    rule_name: str = Field(..., min_length=1, max_length=255)
    rule_type: RuleType
    action: RuleAction
    priority: int | None = Field(None, ge=0, description="Lower runs first; defaults to max+10")
    enabled: bool = True


class FilterRuleUpdate(FilterRuleBase):
    """Partial update of a filtering rule."""

    rule_name: str | None = Field(None, min_length=1, max_length=255)
    rule_type: RuleType | None = None
    action: RuleAction | None = None
    priority: int | None = Field(None, ge=0)
    enabled: bool | None = None


class FilterRuleResponse(BaseModel):
    """A stored filtering rule."""

    id: str
    user_id: str
    connection_id: str | None = None
    rule_name: str
    rule_type: RuleType
    action: RuleAction
    conditions: dict[str, Any] | None = None
    priority: int
    enabled: bool
    description: str | None = None
    event_types: str | None = None
    entity_patterns: str | None = None
    frequency_limit: int | None = None
    time_window_minutes: int
    match_count: int
    last_matched_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ToggleRequest(BaseModel):
    """Enable or disable one rule."""

    enabled: bool


class BulkToggleRequest(BaseModel):
    """Enable or disable several rules at once."""

    rule_ids: list[str] = Field(..., min_length=1, max_length=500)
    enabled: bool


class BulkToggleResponse(BaseModel):
    updated: int


class FilterRuleStatistics(BaseModel):
    """Rule counts and match totals per rule type."""

    total_rules: int
    enabled_rules: int
    total_matches: int
    by_rule_type: dict[str, dict[str, int]]


class ProcessingStatsResponse(BaseModel):
    """Event processor counters."""

    total_processed: int
    total_filtered: int
    total_stored: int
    filter_rate: float
    min_processing_time_ms: float
    max_processing_time_ms: float
    avg_processing_time_ms: float
