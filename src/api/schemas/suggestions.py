"""AI suggestion API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.storage.entities.ai_suggestion import SuggestionStatus, SuggestionType


class GenerateSuggestionRequest(BaseModel):
    """Ask the AI for a suggestion based on a connection's recent events."""

    connection_id: str
    user_context: str | None = Field(None, max_length=2000)
    event_limit: int = Field(100, ge=1, le=1000)


class SuggestionResponse(BaseModel):
    """A stored AI suggestion."""

    id: str
    connection_id: str
    suggestion_type: SuggestionType
    title: str
    description: str
    automation_config: dict[str, Any] = Field(default_factory=dict)
    confidence_score: float
    reasoning: str | None = None
    status: SuggestionStatus
    ha_automation_id: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class DecisionRequest(BaseModel):
    """Approve or reject with an optional reason."""

    reason: str | None = Field(None, max_length=2000)


class FeedbackRequest(BaseModel):
    """Effectiveness feedback on an implemented suggestion."""

    effectiveness_rating: int = Field(..., ge=1, le=5)
    comments: str | None = Field(None, max_length=5000)
    performance_data: dict[str, Any] | None = None


class FeedbackResponse(BaseModel):
    id: str
    suggestion_id: str
    effectiveness_rating: int
    comments: str | None = None
    performance_data: dict[str, Any] | None = None
    feedback_date: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RateLimitStatusResponse(BaseModel):
    """Remaining AI request and token budget."""

    remaining_requests: int
    remaining_tokens: int
    seconds_until_refill: float
    requests_per_minute: int
    tokens_per_minute: int
    burst_limit: int
