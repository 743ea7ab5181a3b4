"""TappHA exception hierarchy.

Base exceptions for all application layers with correlation ID support.

Usage:
    from src.exceptions import HAClientError, NotFoundError

    try:
        await client.get_automation_config(automation_id)
    except HAClientError as e:
        logger.error("HA call failed", correlation_id=e.correlation_id, tool=e.tool)
"""

import uuid
from typing import Any


class TapphaError(Exception):
    """Base exception for all TappHA application errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class DALError(TapphaError):
    """Errors from data access layer operations."""

    pass


class HAClientError(TapphaError):
    """Errors from Home Assistant client operations.

    Raised when HA REST or WebSocket calls fail, with optional tool name
    and detail context for diagnostics.
    """

    def __init__(
        self,
        message: str,
        tool: str | None = None,
        details: dict[str, Any] | None = None,
        *,
        status_code: int | None = None,
        correlation_id: str | None = None,
    ):
        self.tool = tool
        self.details = details or {}
        self.status_code = status_code
        super().__init__(message, correlation_id=correlation_id)


class LLMError(TapphaError):
    """Errors from LLM provider operations."""

    def __init__(self, message: str, *, provider: str | None = None, **kwargs):
        self.provider = provider
        super().__init__(message, **kwargs)


class ValidationError(TapphaError):
    """Errors from input validation (beyond Pydantic)."""

    def __init__(self, message: str, *, errors: list[str] | None = None, **kwargs):
        self.errors = errors or []
        super().__init__(message, **kwargs)


class NotFoundError(TapphaError):
    """A requested resource does not exist (or is not visible to the caller)."""

    def __init__(self, resource: str, resource_id: str, **kwargs):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}", **kwargs)


class ConflictError(TapphaError):
    """A create/update would violate a uniqueness rule."""

    pass


class RateLimitExceededError(TapphaError):
    """The AI token bucket has no capacity left."""

    def __init__(self, message: str, *, retry_after: float = 0.0, **kwargs):
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


class LifecycleError(TapphaError):
    """Invalid automation or suggestion lifecycle operation."""

    pass


class ConfigurationError(TapphaError):
    """Errors from application configuration."""

    pass
