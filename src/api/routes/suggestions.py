"""AI suggestion routes.

Generation is rate limited twice: slowapi per client IP, and the AI
token bucket inside the service.
"""

from fastapi import APIRouter, Query, Request, status

from src.api.deps import CurrentUser, DBSession
from src.api.rate_limit import CRITICAL_LIMIT, limiter
from src.api.schemas import Page
from src.api.schemas.suggestions import (
    DecisionRequest,
    FeedbackRequest,
    FeedbackResponse,
    GenerateSuggestionRequest,
    RateLimitStatusResponse,
    SuggestionResponse,
)
from src.llm.rate_limiter import get_ai_rate_limiter
from src.services.suggestions import SuggestionService
from src.storage.entities.ai_suggestion import SuggestionStatus

router = APIRouter(prefix="/ai-suggestions", tags=["AI Suggestions"])


@router.post("/generate", response_model=SuggestionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(CRITICAL_LIMIT)
async def generate_suggestion(
    request: Request,
    body: GenerateSuggestionRequest,
    user: CurrentUser,
    session: DBSession,
) -> SuggestionResponse:
    """Analyse recent events of a connection and store a PENDING suggestion."""
    suggestion = await SuggestionService(session).generate(
        user, body.connection_id, body.user_context, event_limit=body.event_limit
    )
    await session.commit()
    return SuggestionResponse.model_validate(suggestion)


@router.get("", response_model=Page[SuggestionResponse])
async def list_suggestions(
    user: CurrentUser,
    session: DBSession,
    connection_id: str = Query(...),
    suggestion_status: SuggestionStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> Page[SuggestionResponse]:
    result = await SuggestionService(session).list_suggestions(
        user, connection_id, status=suggestion_status, limit=limit, offset=offset
    )
    return Page[SuggestionResponse].model_validate(result, from_attributes=True)


@router.get("/rate-limit/status", response_model=RateLimitStatusResponse)
async def rate_limit_status() -> RateLimitStatusResponse:
    """Remaining AI budget in the current window."""
    return RateLimitStatusResponse(**get_ai_rate_limiter().status())


@router.get("/{suggestion_id}", response_model=SuggestionResponse)
async def get_suggestion(suggestion_id: str, user: CurrentUser, session: DBSession) -> SuggestionResponse:
    return SuggestionResponse.model_validate(await SuggestionService(session).get(user, suggestion_id))


@router.post("/{suggestion_id}/approve", response_model=SuggestionResponse)
async def approve_suggestion(
    suggestion_id: str,
    body: DecisionRequest,
    user: CurrentUser,
    session: DBSession,
) -> SuggestionResponse:
    suggestion = await SuggestionService(session).approve(user, suggestion_id, body.reason)
    await session.commit()
    return SuggestionResponse.model_validate(suggestion)


@router.post("/{suggestion_id}/reject", response_model=SuggestionResponse)
async def reject_suggestion(
    suggestion_id: str,
    body: DecisionRequest,
    user: CurrentUser,
    session: DBSession,
) -> SuggestionResponse:
    suggestion = await SuggestionService(session).reject(user, suggestion_id, body.reason)
    await session.commit()
    return SuggestionResponse.model_validate(suggestion)


@router.post("/{suggestion_id}/implement", response_model=SuggestionResponse)
async def implement_suggestion(
    suggestion_id: str,
    user: CurrentUser,
    session: DBSession,
) -> SuggestionResponse:
    """Deploy an approved suggestion; the result is IMPLEMENTED or FAILED."""
    suggestion = await SuggestionService(session).implement(user, suggestion_id)
    await session.commit()
    return SuggestionResponse.model_validate(suggestion)


@router.post(
    "/{suggestion_id}/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
)
async def suggestion_feedback(
    suggestion_id: str,
    body: FeedbackRequest,
    user: CurrentUser,
    session: DBSession,
) -> FeedbackResponse:
    feedback = await SuggestionService(session).feedback(
        user,
        suggestion_id,
        body.effectiveness_rating,
        body.comments,
        body.performance_data,
    )
    await session.commit()
    return FeedbackResponse.model_validate(feedback)
