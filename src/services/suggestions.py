"""AI-generated automation suggestions.

Summarises a connection's recent events, asks the LLM for one suggestion
as JSON and walks the suggestion through approval and implementation.
"""

import json
import logging
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage
from sqlalchemy.ext.asyncio import AsyncSession

from src.dal.connections import ConnectionRepository
from src.dal.events import EventRepository
from src.dal.suggestions import SuggestionRepository
from src.exceptions import (
    HAClientError,
    LifecycleError,
    LLMError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)
from src.ha.client import HAClient
from src.lifecycle.deploy import AutomationDeployer
from src.llm.factory import get_default_llm
from src.llm.parsing import estimate_tokens, extract_json
from src.llm.rate_limiter import TokenBucketRateLimiter, get_ai_rate_limiter
from src.services.connections import page
from src.settings import get_settings
from src.storage.entities.ai_suggestion import (
    AISuggestion,
    ApprovalDecision,
    SuggestionApproval,
    SuggestionFeedback,
    SuggestionStatus,
    SuggestionType,
)
from src.storage.models import utcnow

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a Home Assistant automation expert.
You analyse summaries of recent Home Assistant events and propose ONE automation
that would save the household time or energy.

Respond with a single JSON object and nothing else:
{
  "suggestion_type": "NEW_AUTOMATION | AUTOMATION_OPTIMIZATION | SCHEDULE_ADJUSTMENT | TRIGGER_REFINEMENT",
  "title": "short title",
  "description": "what the automation does",
  "automation_config": {"trigger": [...], "condition": [...], "action": [...], "mode": "single"},
  "confidence": 0.0-1.0,
  "reasoning": "why the events support this suggestion"
}"""


def _clamp(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, number))


def _suggestion_type(value: Any) -> SuggestionType:
    try:
        return SuggestionType(str(value).upper())
    except ValueError:
        return SuggestionType.NEW_AUTOMATION


class SuggestionService:
    """Generates, reviews and implements AI suggestions."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        llm: Any | None = None,
        rate_limiter: TokenBucketRateLimiter | None = None,
        ha_client: HAClient | None = None,
    ):
        self.session = session
        self.repo = SuggestionRepository(session)
        self.connections = ConnectionRepository(session)
        self.events = EventRepository(session)
        self.deployer = AutomationDeployer(session, ha_client)
        self._llm = llm
        self.rate_limiter = rate_limiter or get_ai_rate_limiter()

    @property
    def llm(self) -> Any:
        if self._llm is None:
            self._llm = get_default_llm()
        return self._llm

    async def _connection(self, user_id: str, connection_id: str) -> None:
        if await self.connections.get_for_user(connection_id, user_id) is None:
            raise NotFoundError("Connection", connection_id)

    async def get(self, user_id: str, suggestion_id: str) -> AISuggestion:
        suggestion = await self.repo.get_by_id(suggestion_id)
        if suggestion is None:
            raise NotFoundError("Suggestion", suggestion_id)
        await self._connection(user_id, suggestion.connection_id)
        return suggestion

    async def generate(
        self,
        user_id: str,
        connection_id: str,
        user_context: str | None = None,
        event_limit: int = 100,
    ) -> AISuggestion:
        """Ask the LLM for a suggestion based on recent events.

        Raises:
            ValidationError: When the connection has no events yet.
            RateLimitExceededError: When the AI token bucket is empty.
            LLMError: When the provider fails or returns unusable output.
        """
        await self._connection(user_id, connection_id)
        events = await self.events.recent(connection_id, limit=event_limit)
        if not events:
            raise ValidationError(
                "No events available for analysis",
                errors=["The connection has not recorded any events yet"],
            )

        summary = EventRepository.summarize(events)
        prompt = "Recent Home Assistant activity:\n" + json.dumps(summary, indent=2, default=str)
        if user_context:
            prompt += f"\n\nUser context: {user_context}"

        estimated = estimate_tokens(SYSTEM_PROMPT + prompt) + get_settings().llm_max_tokens
        if not self.rate_limiter.try_consume(estimated):
            raise RateLimitExceededError(
                "AI rate limit exceeded, try again later",
                retry_after=self.rate_limiter.seconds_until_refill(),
            )

        try:
            response = await self.llm.ainvoke(
                [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=prompt)]
            )
        except Exception as e:
            raise LLMError(f"LLM request failed: {e}", provider=get_settings().llm_provider) from e

        content = response.content if isinstance(response.content, str) else str(response.content)
        data = extract_json(content)
        if not data or not data.get("title"):
            raise LLMError("LLM returned an unparseable suggestion", provider=get_settings().llm_provider)

        suggestion = AISuggestion(
            connection_id=connection_id,
            suggestion_type=_suggestion_type(data.get("suggestion_type")),
            title=str(data["title"])[:255],
            description=str(data.get("description") or data["title"]),
            automation_config=data.get("automation_config") or {},
            confidence_score=_clamp(data.get("confidence")),
            reasoning=data.get("reasoning"),
            status=SuggestionStatus.PENDING,
            created_by=user_id,
            created_at=utcnow(),
        )
        await self.repo.add(suggestion)
        logger.info(
            "Generated suggestion %r for %s (confidence %.2f)",
            suggestion.title,
            connection_id,
            suggestion.confidence_score,
        )
        return suggestion

    async def _decide(
        self,
        user_id: str,
        suggestion_id: str,
        status: SuggestionStatus,
        decision: ApprovalDecision,
        reason: str | None,
    ) -> AISuggestion:
        suggestion = await self.get(user_id, suggestion_id)
        suggestion.transition_to(status)
        await self.repo.add_approval(
            SuggestionApproval(
                suggestion_id=suggestion.id,
                user_id=user_id,
                decision=decision,
                reason=reason,
                decided_at=utcnow(),
            )
        )
        return suggestion

    async def approve(self, user_id: str, suggestion_id: str, reason: str | None = None) -> AISuggestion:
        return await self._decide(
            user_id, suggestion_id, SuggestionStatus.APPROVED, ApprovalDecision.APPROVED, reason
        )

    async def reject(self, user_id: str, suggestion_id: str, reason: str | None = None) -> AISuggestion:
        return await self._decide(
            user_id, suggestion_id, SuggestionStatus.REJECTED, ApprovalDecision.REJECTED, reason
        )

    async def implement(self, user_id: str, suggestion_id: str) -> AISuggestion:
        """Deploy an APPROVED suggestion to HA and put it under lifecycle management.

        On an HA failure the suggestion is marked FAILED and returned.
        """
        suggestion = await self.get(user_id, suggestion_id)
        if suggestion.status != SuggestionStatus.APPROVED:
            raise LifecycleError(
                f"Only approved suggestions can be implemented (status: {suggestion.status.value})"
            )

        try:
            deployment = await self.deployer.deploy(
                suggestion.connection_id,
                suggestion.title,
                suggestion.automation_config,
                description=suggestion.description,
                user_id=user_id,
            )
        except HAClientError as e:
            logger.warning("Implementing suggestion %s failed: %s", suggestion.id, e)
            suggestion.transition_to(SuggestionStatus.FAILED)
            return suggestion

        suggestion.ha_automation_id = deployment.ha_automation_id
        suggestion.transition_to(SuggestionStatus.IMPLEMENTED)
        approval = await self.repo.latest_approval(suggestion.id)
        if approval is not None:
            approval.implemented_at = suggestion.processed_at
        await self.session.flush()
        return suggestion

    async def feedback(
        self,
        user_id: str,
        suggestion_id: str,
        rating: int,
        comments: str | None = None,
        performance_data: dict[str, Any] | None = None,
    ) -> SuggestionFeedback:
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", errors=["effectiveness_rating"])
        suggestion = await self.get(user_id, suggestion_id)
        return await self.repo.add_feedback(
            SuggestionFeedback(
                suggestion_id=suggestion.id,
                effectiveness_rating=rating,
                comments=comments,
                performance_data=performance_data,
                feedback_date=utcnow(),
            )
        )

    async def list_suggestions(
        self,
        user_id: str,
        connection_id: str,
        status: SuggestionStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        await self._connection(user_id, connection_id)
        items, total = await self.repo.list_for_connection(
            connection_id, status=status, limit=limit, offset=offset
        )
        return page(items, total, limit, offset)

    def rate_limit_status(self) -> dict[str, Any]:
        return self.rate_limiter.status()
