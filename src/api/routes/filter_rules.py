"""Event filtering rule routes."""

from fastapi import APIRouter, Query, status

from src.api.deps import CurrentUser, DBSession
from src.api.schemas import Page
from src.api.schemas.filter_rules import (
    BulkToggleRequest,
    BulkToggleResponse,
    FilterRuleCreate,
    FilterRuleResponse,
    FilterRuleStatistics,
    FilterRuleUpdate,
    ToggleRequest,
)
from src.services.filter_rules import FilterRuleService

router = APIRouter(prefix="/event-filter-rules", tags=["Event Filter Rules"])


@router.post("", response_model=FilterRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    body: FilterRuleCreate,
    user: CurrentUser,
    session: DBSession,
) -> FilterRuleResponse:
    rule = await FilterRuleService(session).create(user, body.model_dump(exclude_none=True))
    await session.commit()
    await session.refresh(rule)
    return FilterRuleResponse.model_validate(rule)


@router.get("", response_model=Page[FilterRuleResponse])
async def list_rules(
    user: CurrentUser,
    session: DBSession,
    connection_id: str | None = Query(None),
    enabled: bool | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> Page[FilterRuleResponse]:
    """The caller's rules in ascending priority."""
    result = await FilterRuleService(session).list_rules(
        user, limit=limit, offset=offset, connection_id=connection_id, enabled=enabled
    )
    return Page[FilterRuleResponse].model_validate(result, from_attributes=True)


@router.get("/statistics", response_model=FilterRuleStatistics)
async def rule_statistics(user: CurrentUser, session: DBSession) -> FilterRuleStatistics:
    return FilterRuleStatistics(**await FilterRuleService(session).statistics(user))


@router.get("/most-active", response_model=list[FilterRuleResponse])
async def most_active_rules(
    user: CurrentUser,
    session: DBSession,
    limit: int = Query(10, ge=1, le=100),
) -> list[FilterRuleResponse]:
    """Rules with the most matches."""
    rules = await FilterRuleService(session).most_active(user, limit)
    return [FilterRuleResponse.model_validate(r) for r in rules]


@router.get("/connection/{connection_id}", response_model=list[FilterRuleResponse])
async def rules_for_connection(
    connection_id: str,
    user: CurrentUser,
    session: DBSession,
) -> list[FilterRuleResponse]:
    """Enabled rules that apply to a connection, in evaluation order."""
    rules = await FilterRuleService(session).enabled_for_connection(user, connection_id)
    return [FilterRuleResponse.model_validate(r) for r in rules]


@router.post("/bulk-toggle", response_model=BulkToggleResponse)
async def bulk_toggle(
    body: BulkToggleRequest,
    user: CurrentUser,
    session: DBSession,
) -> BulkToggleResponse:
    updated = await FilterRuleService(session).bulk_toggle(user, body.rule_ids, body.enabled)
    await session.commit()
    return BulkToggleResponse(updated=updated)


@router.get("/{rule_id}", response_model=FilterRuleResponse)
async def get_rule(rule_id: str, user: CurrentUser, session: DBSession) -> FilterRuleResponse:
    return FilterRuleResponse.model_validate(await FilterRuleService(session).get(user, rule_id))


@router.put("/{rule_id}", response_model=FilterRuleResponse)
async def update_rule(
    rule_id: str,
    body: FilterRuleUpdate,
    user: CurrentUser,
    session: DBSession,
) -> FilterRuleResponse:
    rule = await FilterRuleService(session).update(user, rule_id, body.model_dump(exclude_unset=True))
    await session.commit()
    await session.refresh(rule)
    return FilterRuleResponse.model_validate(rule)


@router.post("/{rule_id}/toggle", response_model=FilterRuleResponse)
async def toggle_rule(
    rule_id: str,
    body: ToggleRequest,
    user: CurrentUser,
    session: DBSession,
) -> FilterRuleResponse:
    rule = await FilterRuleService(session).toggle(user, rule_id, body.enabled)
    await session.commit()
    await session.refresh(rule)
    return FilterRuleResponse.model_validate(rule)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(rule_id: str, user: CurrentUser, session: DBSession) -> None:
    await FilterRuleService(session).delete(user, rule_id)
    await session.commit()
