"""System health and status endpoints.

Endpoints:
- /health: Lightweight liveness probe (no dependency checks)
- /ready: Readiness probe (checks the database)
- /status: Component health for monitoring dashboards
- /metrics: HTTP request metrics (rate-limit exempt, auth-gated)
"""

import asyncio
import logging
import time
from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Request

from src import __version__
from src.api.metrics import get_metrics_collector
from src.api.rate_limit import limiter
from src.api.schemas import ComponentHealth, HealthResponse, HealthStatus, SystemStatus
from src.ha.stream_manager import get_stream_manager
from src.ha.websocket import ConnectionState
from src.settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()

_start_time: float = time.time()

_HEALTH_CHECK_TIMEOUT_S = 5.0
_STATUS_CACHE_TTL_S = 10.0

_cached_status: SystemStatus | None = None
_cached_status_at: float = 0.0

_FAILED_STREAM_STATES = {ConnectionState.ERROR.value, ConnectionState.AUTH_FAILED.value}


@router.get("/health", response_model=HealthResponse, summary="Health Check (Liveness)")
async def health_check() -> HealthResponse:
    """Return healthy whenever the process is serving requests."""
    return HealthResponse(status=HealthStatus.HEALTHY, timestamp=datetime.now(UTC), version=__version__)


@router.get("/ready", response_model=HealthResponse, summary="Readiness Probe")
async def readiness_check() -> HealthResponse:
    """Return 503 until the database answers."""
    db_health = await _check_database()
    if db_health.status == HealthStatus.UNHEALTHY:
        raise HTTPException(status_code=503, detail="Not ready: database unavailable")
    return HealthResponse(status=HealthStatus.HEALTHY, timestamp=datetime.now(UTC), version=__version__)


@router.get("/metrics", summary="HTTP Request Metrics")
@limiter.exempt
async def get_metrics(request: Request) -> dict:
    """Request counts, latency percentiles, errors and uptime."""
    return get_metrics_collector().get_metrics()


@router.get("/status", response_model=SystemStatus, summary="System Status")
async def system_status() -> SystemStatus:
    """Component health, cached for a few seconds to absorb polling."""
    global _cached_status, _cached_status_at

    now = time.monotonic()
    if _cached_status is not None and (now - _cached_status_at) < _STATUS_CACHE_TTL_S:
        return _cached_status

    settings = get_settings()
    components = [await _check_database(), _check_event_streams(), _check_llm()]

    result = SystemStatus(
        status=_determine_overall_status(components),
        timestamp=datetime.now(UTC),
        version=__version__,
        environment=settings.environment,
        components=components,
        uptime_seconds=time.time() - _start_time,
        event_streams=get_stream_manager().stats,
    )

    _cached_status = result
    _cached_status_at = time.monotonic()
    return result


async def _check_database() -> ComponentHealth:
    """Check database connectivity with timeout."""
    start = time.perf_counter()

    try:
        from sqlalchemy import text

        from src.storage import get_session

        async def _ping_db() -> None:
            async with get_session() as session:
                await session.execute(text("SELECT 1"))

        await asyncio.wait_for(_ping_db(), timeout=_HEALTH_CHECK_TIMEOUT_S)
        return ComponentHealth(
            name="database",
            status=HealthStatus.HEALTHY,
            message="PostgreSQL connected",
            latency_ms=(time.perf_counter() - start) * 1000,
        )

    except TimeoutError:
        logger.error("Database health check timed out after %.1fs", _HEALTH_CHECK_TIMEOUT_S)
        return ComponentHealth(
            name="database",
            status=HealthStatus.UNHEALTHY,
            message="Database health check timed out",
            latency_ms=(time.perf_counter() - start) * 1000,
        )
    except Exception as e:
        logger.error("Database health check failed: %s", e, exc_info=True)
        message = f"Database error: {e!s}" if get_settings().debug else "Database unavailable"
        return ComponentHealth(
            name="database",
            status=HealthStatus.UNHEALTHY,
            message=message,
            latency_ms=(time.perf_counter() - start) * 1000,
        )


def _check_event_streams() -> ComponentHealth:
    """Degraded when any running stream has given up or failed auth."""
    stats = get_stream_manager().stats
    failed = sum(count for state, count in stats["by_state"].items() if state in _FAILED_STREAM_STATES)
    if failed:
        return ComponentHealth(
            name="event_streams",
            status=HealthStatus.DEGRADED,
            message=f"{failed} of {stats['streams']} event streams failed",
        )
    return ComponentHealth(
        name="event_streams",
        status=HealthStatus.HEALTHY,
        message=f"{stats['streams']} event streams running",
    )


def _check_llm() -> ComponentHealth:
    settings = get_settings()
    if settings.llm_provider != "ollama" and not settings.llm_api_key.get_secret_value():
        return ComponentHealth(
            name="llm",
            status=HealthStatus.DEGRADED,
            message="LLM API key not configured; AI suggestions are unavailable",
        )
    return ComponentHealth(
        name="llm",
        status=HealthStatus.HEALTHY,
        message=f"{settings.llm_provider}/{settings.llm_model}",
    )


def invalidate_status_cache() -> None:
    """Clear the cached /status response. Used in tests."""
    global _cached_status, _cached_status_at
    _cached_status = None
    _cached_status_at = 0.0


def _determine_overall_status(components: list[ComponentHealth]) -> HealthStatus:
    """Any unhealthy database is UNHEALTHY; any other problem is DEGRADED."""
    critical_components = {"database"}

    has_unhealthy_critical = False
    has_problem = False

    for component in components:
        if component.status == HealthStatus.UNHEALTHY and component.name in critical_components:
            has_unhealthy_critical = True
        elif component.status != HealthStatus.HEALTHY:
            has_problem = True

    if has_unhealthy_critical:
        return HealthStatus.UNHEALTHY
    if has_problem:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY
