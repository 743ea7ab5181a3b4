"""Authentication dependency for FastAPI.

Supports multiple authentication methods (checked in order):
1. JWT Bearer token (Authorization: Bearer <token>)
2. JWT session cookie (tappha_session)
3. API key header (X-API-Key)
4. API key query parameter (api_key)

The authenticated identity (JWT subject, or "api_key") is the user that
owns connections, filter rules and suggestions.

If no API key is configured:
- Production: authentication fails closed (rejects all requests)
- Development/testing: every request runs as ANONYMOUS_USER
"""

import logging
import secrets
import time
from typing import Annotated, cast

import jwt
from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader, APIKeyQuery

# Import module (not function) so monkeypatching in tests works correctly.
import src.settings as _settings_mod
from src.exceptions import ConfigurationError
from src.settings import Settings

logger = logging.getLogger(__name__)

# Header-based API key
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Query parameter-based API key
api_key_query = APIKeyQuery(name="api_key", auto_error=False)

# JWT configuration
JWT_ALGORITHM = "HS256"
JWT_COOKIE_NAME = "tappha_session"

API_KEY_USER = "api_key"
ANONYMOUS_USER = "anonymous"

# Routes that are exempt from authentication.
# /metrics requires auth; only the probes and the token exchange are open.
EXEMPT_ROUTES = {
    "/api/v1/health",
    "/api/v1/ready",
    "/api/v1/auth/token",
}


def _get_jwt_secret(settings: Settings) -> str:
    """Get the JWT signing secret.

    In production an explicit JWT_SECRET is required. Elsewhere a secret
    derived from the API key (or a fixed development value) is used.
    """
    configured = settings.jwt_secret.get_secret_value()
    if configured:
        if settings.environment == "production" and len(configured) < 32:
            logger.warning(
                "JWT_SECRET is shorter than 32 characters. Use a cryptographically "
                "random secret for production (e.g. `openssl rand -hex 32`)."
            )
        return configured

    if settings.environment == "production":
        raise ConfigurationError(
            "JWT_SECRET must be set in production. Generate one with: openssl rand -hex 32"
        )

    api_key = settings.api_key.get_secret_value()
    if api_key:
        return f"tappha-jwt-{api_key}-auto"
    return "tappha-dev-jwt-secret"


def create_jwt_token(username: str, settings: Settings | None = None) -> str:
    """Create a JWT token for the given username.

    Args:
        username: The authenticated username
        settings: Optional settings override

    Returns:
        Encoded JWT token string
    """
    settings = settings or _settings_mod.get_settings()
    secret = _get_jwt_secret(settings)
    now = int(time.time())
    payload = {
        "sub": username,
        "iat": now,
        "exp": now + settings.jwt_expiry_hours * 3600,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_jwt_token(token: str, settings: Settings | None = None) -> dict | None:
    """Decode and validate a JWT token.

    Returns:
        Decoded payload dict, or None if invalid/expired
    """
    settings = settings or _settings_mod.get_settings()
    secret = _get_jwt_secret(settings)
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def is_auth_configured(settings: Settings) -> bool:
    """Authentication is enabled once an API key is configured."""
    return bool(settings.api_key.get_secret_value())


def check_api_key(provided: str | None, settings: Settings) -> bool:
    """Constant-time comparison against the configured API key."""
    configured = settings.api_key.get_secret_value()
    if not configured or not provided:
        return False
    return secrets.compare_digest(provided, configured)


def _extract_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


async def verify_api_key(
    request: Request,
    header_key: str | None = Security(api_key_header),
    query_key: str | None = Security(api_key_query),
) -> str:
    """Verify authentication from JWT or API key.

    Returns:
        The authenticated identity (JWT subject, "api_key" or "anonymous");
        an empty string on exempt routes.

    Raises:
        HTTPException: 401 Unauthorized if authentication fails
    """
    if request.url.path in EXEMPT_ROUTES:
        return ""

    settings = _settings_mod.get_settings()

    if not is_auth_configured(settings):
        if settings.environment == "production":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication is not configured. Set API_KEY.",
            )
        return ANONYMOUS_USER

    # 1. JWT Bearer token
    bearer_token = _extract_bearer_token(request)
    if bearer_token:
        payload = decode_jwt_token(bearer_token, settings)
        if payload and "sub" in payload:
            return cast("str", payload["sub"])
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
        )

    # 2. JWT session cookie
    cookie_token = request.cookies.get(JWT_COOKIE_NAME)
    if cookie_token:
        payload = decode_jwt_token(cookie_token, settings)
        if payload and "sub" in payload:
            return cast("str", payload["sub"])
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session.",
        )

    # 3. API key (header or query)
    provided_key = header_key or query_key
    if provided_key:
        if check_api_key(provided_key, settings):
            return API_KEY_USER
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key.",
        )

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required. Provide a JWT token or API key.",
    )


# Dependency for endpoints that require authentication
RequireAPIKey = Annotated[str, Depends(verify_api_key)]
