"""Common Pydantic schemas for API requests and responses.

Provides reusable schema definitions for consistent
API responses across all endpoints.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from src import __version__

T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: int = Field(..., description="HTTP status code")
    message: Any = Field(..., description="Human-readable error message or structured detail")
    type: str = Field(..., description="Error type classification")
    correlation_id: str | None = Field(default=None, description="Request ID for log correlation")


class ErrorResponse(BaseModel):
    """Standard error response wrapper."""

    error: ErrorDetail


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status for a single component."""

    name: str = Field(..., description="Component name")
    status: HealthStatus = Field(..., description="Component health status")
    message: str | None = Field(default=None, description="Additional status message")
    latency_ms: float | None = Field(
        default=None,
        description="Component response latency in milliseconds",
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: HealthStatus = Field(..., description="Overall system health")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Health check timestamp",
    )
    version: str = Field(default=__version__, description="Application version")


class SystemStatus(BaseModel):
    """Detailed system status response."""

    status: HealthStatus = Field(..., description="Overall system health")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    version: str = Field(default=__version__)
    environment: str = Field(..., description="Current environment")
    components: list[ComponentHealth] = Field(default_factory=list)
    uptime_seconds: float | None = None
    event_streams: dict[str, Any] = Field(
        default_factory=dict,
        description="Running event streams and their stats",
    )


class Page(BaseModel, Generic[T]):
    """Offset-paginated list envelope."""

    items: list[T]
    total: int = Field(..., ge=0)
    limit: int
    offset: int
    has_more: bool


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str = Field(..., description="Response message")


__all__ = [
    "ComponentHealth",
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "HealthStatus",
    "MessageResponse",
    "Page",
    "SystemStatus",
]
