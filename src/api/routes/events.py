"""Event processing statistics routes."""

from fastapi import APIRouter

from src.api.schemas import MessageResponse
from src.api.schemas.filter_rules import ProcessingStatsResponse
from src.ha.event_processor import get_event_processor

router = APIRouter(prefix="/events/processing", tags=["Events"])


@router.get("/stats", response_model=ProcessingStatsResponse)
async def processing_stats() -> ProcessingStatsResponse:
    """Processed, filtered and stored counts with timing."""
    return ProcessingStatsResponse(**get_event_processor().stats)


@router.post("/stats/reset", response_model=MessageResponse)
async def reset_processing_stats() -> MessageResponse:
    get_event_processor().reset_stats()
    return MessageResponse(message="Event processing statistics reset")
