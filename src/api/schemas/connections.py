"""Home Assistant connection API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from src.storage.entities.connection import ConnectionStatus


class ConnectRequest(BaseModel):
    """Register a new Home Assistant instance."""

    name: str = Field(..., min_length=1, max_length=255)
    url: HttpUrl = Field(..., description="Base URL of the HA instance, e.g. http://ha.local:8123")
    token: str = Field(..., min_length=1, max_length=1000, description="Long-lived access token")


class ConnectionResponse(BaseModel):
    """Stored connection (the access token is never returned)."""

    id: str
    name: str
    url: str
    status: ConnectionStatus
    home_assistant_version: str | None = None
    last_connected_at: datetime | None = None
    last_seen_at: datetime | None = None
    connection_health: dict[str, Any] | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ConnectionTestResponse(BaseModel):
    """Outcome of a REST plus WebSocket connection test."""

    success: bool
    api_access: bool = False
    websocket_access: bool = False
    event_subscription: bool = False
    version: str | None = None
    latency_ms: float | None = None
    error: str | None = None


class ConnectResponse(BaseModel):
    """Response to a successful connect."""

    connection: ConnectionResponse
    test: ConnectionTestResponse
    stream_started: bool = False


class ConnectionStatusResponse(BaseModel):
    """Current status of a connection including its live event stream."""

    connection_id: str
    name: str
    url: str
    status: str
    home_assistant_version: str | None = None
    last_seen_at: datetime | None = None
    last_connected_at: datetime | None = None
    connection_health: dict[str, Any] | None = None
    websocket_state: str | None = None
    stream: dict[str, Any] | None = None


class EventResponse(BaseModel):
    """A stored Home Assistant event."""

    id: str
    connection_id: str
    event_type: str
    entity_id: str | None = None
    old_state: str | None = None
    new_state: str | None = None
    attributes: dict[str, Any] | None = None
    timestamp: datetime
    processed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AuditLogResponse(BaseModel):
    """One audited connection action."""

    id: str
    connection_id: str
    action: str
    details: dict[str, Any] | None = None
    success: bool
    error_message: str | None = None
    duration_ms: int | None = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class ConnectionMetricsResponse(BaseModel):
    """Aggregated connection metrics over a time range."""

    connection_id: str
    time_range: str
    start: datetime
    end: datetime
    event_count: int
    average_latency: float | None = None
    uptime_percentage: float
    error_rate: float
    average_event_rate: float
    peak_event_rate: int
