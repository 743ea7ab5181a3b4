"""AI suggestion repositories."""

from sqlalchemy import select

from src.dal.base import BaseRepository
from src.storage.entities.ai_suggestion import (
    AISuggestion,
    SuggestionApproval,
    SuggestionFeedback,
    SuggestionStatus,
)


class SuggestionRepository(BaseRepository[AISuggestion]):
    """Repository for AISuggestion rows."""

    model = AISuggestion
    order_by_field = "created_at"
    order_desc = True

    async def list_for_connection(
        self,
        connection_id: str,
        status: SuggestionStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AISuggestion], int]:
        return await self.paginate(
            limit=limit, offset=offset, connection_id=connection_id, status=status
        )

    async def add_approval(self, approval: SuggestionApproval) -> SuggestionApproval:
        return await self.add(approval)  # type: ignore[arg-type]

    async def latest_approval(self, suggestion_id: str) -> SuggestionApproval | None:
        result = await self.session.execute(
            select(SuggestionApproval)
            .where(SuggestionApproval.suggestion_id == suggestion_id)
            .order_by(SuggestionApproval.decided_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def add_feedback(self, feedback: SuggestionFeedback) -> SuggestionFeedback:
        return await self.add(feedback)  # type: ignore[arg-type]
