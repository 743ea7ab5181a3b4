"""Rate limiting configuration for API endpoints.

Provides a shared Limiter instance that route modules can import
to apply per-endpoint rate limits on expensive operations.

Rate limit tiers:
- Global default: 60/minute per IP (covers ALL endpoints automatically)
- Critical: 5/minute (AI suggestion generation, connecting a new HA instance)

Per-endpoint decorators override the global default with tighter limits.

Usage in route modules:
    from src.api.rate_limit import limiter

    @router.post("/generate")
    @limiter.limit(CRITICAL_LIMIT)
    async def generate(request: Request, ...):
        ...
"""

from slowapi import Limiter
from starlette.requests import Request

DEFAULT_LIMIT = "60/minute"
CRITICAL_LIMIT = "5/minute"


def _get_real_client_ip(request: Request) -> str:
    """Extract the real client IP, respecting X-Forwarded-For from trusted proxies.

    X-Forwarded-For contains the real client IP as the first entry in the
    comma-separated list.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "127.0.0.1"


# Shared rate limiter instance
limiter = Limiter(
    key_func=_get_real_client_ip,
    default_limits=[DEFAULT_LIMIT],
)

# Maximum request body size (bytes), enforced by middleware in main.py
MAX_REQUEST_BODY_BYTES = 1_048_576  # 1 MB
