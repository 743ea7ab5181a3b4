"""Home Assistant connection routes.

Connect, test, disconnect and delete HA instances, and read their
events, metrics and audit log.
"""

import structlog
from fastapi import APIRouter, Query, Request, status

from src.api.deps import CurrentUser, DBSession
from src.api.rate_limit import CRITICAL_LIMIT, limiter
from src.api.schemas import Page
from src.api.schemas.connections import (
    AuditLogResponse,
    ConnectionMetricsResponse,
    ConnectionResponse,
    ConnectionStatusResponse,
    ConnectionTestResponse,
    ConnectRequest,
    ConnectResponse,
    EventResponse,
)
from src.services.connections import ConnectionService
from src.services.metrics import DEFAULT_TIME_RANGE, MetricsService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/home-assistant", tags=["Home Assistant"])


@router.post("/connect", response_model=ConnectResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(CRITICAL_LIMIT)
async def connect(
    request: Request,
    body: ConnectRequest,
    user: CurrentUser,
    session: DBSession,
) -> ConnectResponse:
    """Test and register an HA instance, then start its event stream."""
    service = ConnectionService(session)
    conn, result = await service.connect(user, body.name, str(body.url), body.token)
    await session.commit()

    stream_started = False
    try:
        stream_started = await service.start_stream(conn)
    except Exception:
        logger.exception("event_stream_start_failed", connection_id=conn.id)

    return ConnectResponse(
        connection=ConnectionResponse.model_validate(conn),
        test=ConnectionTestResponse(**result.to_dict()),
        stream_started=stream_started,
    )


@router.get("/connections", response_model=Page[ConnectionResponse])
async def list_connections(
    user: CurrentUser,
    session: DBSession,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[ConnectionResponse]:
    """List the caller's connections."""
    result = await ConnectionService(session).list_connections(user, limit=limit, offset=offset)
    return Page[ConnectionResponse].model_validate(result, from_attributes=True)


@router.get("/connections/{connection_id}/status", response_model=ConnectionStatusResponse)
async def connection_status(
    connection_id: str,
    user: CurrentUser,
    session: DBSession,
) -> ConnectionStatusResponse:
    """Stored status plus the live WebSocket state."""
    result = await ConnectionService(session).get_status(user, connection_id)
    return ConnectionStatusResponse(**result)


@router.post("/connections/{connection_id}/test", response_model=ConnectionTestResponse)
async def retest_connection(
    connection_id: str,
    user: CurrentUser,
    session: DBSession,
) -> ConnectionTestResponse:
    """Re-run the REST and WebSocket checks and record the outcome."""
    result = await ConnectionService(session).test_connection(user, connection_id)
    await session.commit()
    return ConnectionTestResponse(**result.to_dict())


@router.post("/connections/{connection_id}/disconnect", response_model=ConnectionResponse)
async def disconnect(
    connection_id: str,
    user: CurrentUser,
    session: DBSession,
) -> ConnectionResponse:
    """Stop the event stream and mark the connection DISCONNECTED."""
    conn = await ConnectionService(session).disconnect(user, connection_id)
    await session.commit()
    await session.refresh(conn)
    return ConnectionResponse.model_validate(conn)


@router.delete("/connections/{connection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_connection(
    connection_id: str,
    user: CurrentUser,
    session: DBSession,
) -> None:
    """Delete a connection with its events, metrics and audit log."""
    await ConnectionService(session).delete(user, connection_id)
    await session.commit()


@router.get("/connections/{connection_id}/events", response_model=Page[EventResponse])
async def list_events(
    connection_id: str,
    user: CurrentUser,
    session: DBSession,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    event_type: str | None = Query(None, description="Filter by event type"),
    entity_id: str | None = Query(None, description="Filter by entity ID"),
) -> Page[EventResponse]:
    """Stored events, newest first."""
    result = await ConnectionService(session).list_events(
        user, connection_id, limit=limit, offset=offset, event_type=event_type, entity_id=entity_id
    )
    return Page[EventResponse].model_validate(result, from_attributes=True)


@router.get("/connections/{connection_id}/metrics", response_model=ConnectionMetricsResponse)
async def connection_metrics(
    connection_id: str,
    user: CurrentUser,
    session: DBSession,
    time_range: str = Query(DEFAULT_TIME_RANGE, description="1h, 6h, 24h, 1d, 7d, 30d or 1m"),
) -> ConnectionMetricsResponse:
    """Event volume, latency, uptime and error rate over a time range."""
    result = await MetricsService(session).get_metrics(user, connection_id, time_range)
    return ConnectionMetricsResponse(**result)


@router.get("/connections/{connection_id}/audit-log", response_model=Page[AuditLogResponse])
async def audit_log(
    connection_id: str,
    user: CurrentUser,
    session: DBSession,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> Page[AuditLogResponse]:
    """Audited actions on a connection, newest first."""
    result = await ConnectionService(session).audit_log(user, connection_id, limit=limit, offset=offset)
    return Page[AuditLogResponse].model_validate(result, from_attributes=True)
