"""FastAPI application configuration and setup.

Main entry point for the HTTP API with CORS, middleware,
rate limiting, and lifecycle management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from src import __version__
from src.api.auth import verify_api_key
from src.api.rate_limit import MAX_REQUEST_BODY_BYTES, limiter
from src.api.routes import api_router
from src.exceptions import (
    ConflictError,
    HAClientError,
    LifecycleError,
    LLMError,
    NotFoundError,
    RateLimitExceededError,
    TapphaError,
    ValidationError,
)
from src.settings import Settings, get_settings
from src.storage import close_db, init_db

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

# Request ID for the current request (async-safe)
_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)

# Singleton app instance
_app: FastAPI | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup: verify the database, start the scheduler and resume event
    streams of CONNECTED connections. Shutdown reverses all three.
    """
    settings = get_settings()
    running = settings.environment != "testing"

    if running:
        await init_db()

    scheduler = None
    if settings.scheduler_enabled and running:
        from src.scheduler import SchedulerService

        scheduler = SchedulerService()
        await scheduler.start()

    if settings.event_stream_enabled and running:
        from src.services.connections import ConnectionService
        from src.storage import get_session

        async with get_session() as session:
            resumed = await ConnectionService(session).resume_streams()
        logger.info("event_streams_resumed", count=resumed)

    yield

    from src.ha.stream_manager import get_stream_manager

    await get_stream_manager().stop_all()
    if scheduler:
        await scheduler.stop()
    await close_db()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional settings override (uses get_settings() if not provided)

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="TappHA",
        description="Home Assistant companion: event intelligence, AI suggestions and automation lifecycle",
        version=__version__,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    relaxed = settings.environment in ("development", "testing")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_get_allowed_origins(settings),
        allow_credentials=True,
        allow_methods=["*"] if relaxed else ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"] if relaxed else [
            "Authorization", "Content-Type", "X-API-Key", REQUEST_ID_HEADER,
        ],
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.middleware("http")(_body_size_limit_middleware)
    app.middleware("http")(_security_headers_middleware)
    app.middleware("http")(_request_id_middleware)

    # Lazy import to avoid a circular dependency
    from src.api.middleware import RequestTracingMiddleware

    app.add_middleware(RequestTracingMiddleware)

    # Auth applies globally; health probes are exempted in auth.py
    app.include_router(api_router, prefix="/api/v1", dependencies=[Depends(verify_api_key)])

    _register_exception_handlers(app, settings)

    return app


def _get_allowed_origins(settings: Settings) -> list[str]:
    """Explicit ALLOWED_ORIGINS wins; otherwise open in dev, closed elsewhere."""
    if settings.allowed_origins:
        return [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    if settings.environment in ("development", "testing"):
        return ["*"]
    if settings.environment == "staging":
        return ["http://localhost:3000", "http://localhost:8080"]
    return []


async def _body_size_limit_middleware(request: Request, call_next):
    """Reject requests whose declared body exceeds MAX_REQUEST_BODY_BYTES."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_BODY_BYTES:
        return JSONResponse(
            status_code=413,
            content={
                "error": {
                    "code": 413,
                    "message": f"Request body too large. Maximum size is {MAX_REQUEST_BODY_BYTES} bytes.",
                    "type": "request_too_large",
                    "correlation_id": get_request_id(),
                }
            },
        )
    return await call_next(request)


async def _security_headers_middleware(request: Request, call_next):
    """Add security-related HTTP headers to every response."""
    settings = get_settings()
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.environment in ("production", "staging"):
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store"

    return response


async def _request_id_middleware(request: Request, call_next):
    """Take the request ID from X-Request-ID or generate one, and echo it back."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    _request_id.set(request_id)
    structlog.contextvars.bind_contextvars(request_id=request_id)
    try:
        response = await call_next(request)
    finally:
        structlog.contextvars.unbind_contextvars("request_id")
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def get_request_id() -> str | None:
    """Get the current request's ID from context."""
    return _request_id.get()


def status_for(exc: TapphaError) -> int:
    """HTTP status for an application error."""
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError | LifecycleError):
        return 409
    if isinstance(exc, RateLimitExceededError):
        return 429
    if isinstance(exc, HAClientError):
        return exc.status_code if exc.status_code and exc.status_code >= 400 else 502
    if isinstance(exc, LLMError):
        return 502
    return 500


def _error_response(
    status_code: int,
    message: Any,
    error_type: str,
    correlation_id: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": status_code,
                "message": message,
                "type": error_type,
                "correlation_id": correlation_id,
            }
        },
        headers={REQUEST_ID_HEADER: correlation_id, **(headers or {})},
    )


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Map application, HTTP, validation and unexpected errors onto one envelope."""

    @app.exception_handler(TapphaError)
    async def tappha_error_handler(request: Request, exc: TapphaError) -> JSONResponse:
        correlation_id = get_request_id() or exc.correlation_id
        status_code = status_for(exc)
        error_type = type(exc).__name__.replace("Error", "_error").lower()

        if status_code >= 500:
            logger.error("tappha_error", error_type=error_type, correlation_id=correlation_id, exc_info=exc)
        else:
            logger.info("tappha_error", error_type=error_type, correlation_id=correlation_id, message=str(exc))

        # 4xx messages are meant for the caller; 5xx are sanitized outside debug
        if status_code < 500 or settings.debug:
            message: Any = str(exc)
        else:
            message = f"An error occurred. Correlation ID: {correlation_id}"
        if isinstance(exc, ValidationError) and exc.errors:
            message = {"detail": str(exc), "errors": exc.errors}

        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": str(max(1, round(exc.retry_after)))}
        return _error_response(status_code, message, error_type, correlation_id, headers)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        correlation_id = get_request_id() or str(uuid.uuid4())
        return _error_response(exc.status_code, exc.detail, "http_error", correlation_id)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        correlation_id = get_request_id() or str(uuid.uuid4())
        errors = [
            {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg", "")}
            for e in exc.errors()
        ]
        return _error_response(
            422, {"detail": "Request validation failed", "errors": errors}, "validation_error", correlation_id
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = get_request_id() or str(uuid.uuid4())
        logger.exception("unhandled_exception", correlation_id=correlation_id, exc_info=exc)
        detail = str(exc) if settings.debug else "Internal server error"
        return _error_response(500, detail, "internal_error", correlation_id)


def get_app() -> FastAPI:
    """Get or create the singleton FastAPI application."""
    global _app
    if _app is None:
        _app = create_app()
    return _app


# For uvicorn: use "src.api.main:get_app" with --factory flag,
# or "src.api.main:app" which lazily initializes on first access.
def __getattr__(name: str) -> Any:
    """Create the app only when 'app' is accessed, not at import time."""
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
