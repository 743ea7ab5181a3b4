"""Request tracing middleware for FastAPI.

Logs request method, path, status code, duration and request ID, and
feeds the in-memory metrics collector.
"""

import time
from collections.abc import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.metrics import get_metrics_collector

logger = structlog.get_logger()


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Middleware for request tracing and metrics collection."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        metrics = get_metrics_collector()
        metrics.increment_active_requests()

        # Lazy import to avoid a circular dependency with main
        from src.api.main import get_request_id

        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000

            metrics.record_request(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
            logger.info(
                "request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round(duration_ms, 2),
                request_id=get_request_id(),
            )
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            error_type = type(e).__name__
            metrics.record_error(error_type)
            logger.error(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                request_id=get_request_id(),
                error_type=error_type,
                exc_info=e,
            )
            raise

        finally:
            metrics.decrement_active_requests()
