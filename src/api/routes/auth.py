"""Authentication routes.

Exchanges the API key for a user-scoped JWT (returned and set as an
httpOnly cookie), reports the current session and logs out.
"""

from fastapi import APIRouter, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

import src.settings as _settings_mod
from src.api.auth import (
    JWT_COOKIE_NAME,
    RequireAPIKey,
    check_api_key,
    create_jwt_token,
    is_auth_configured,
)
from src.api.rate_limit import CRITICAL_LIMIT, limiter

router = APIRouter(prefix="/auth", tags=["Authentication"])


class TokenRequest(BaseModel):
    """Exchange the API key for a JWT naming ``username`` as the owner."""

    username: str = Field(..., min_length=1, max_length=100)
    api_key: str = Field(..., min_length=1, max_length=512)


class TokenResponse(BaseModel):
    token: str
    username: str
    expires_in: int


class MeResponse(BaseModel):
    authenticated: bool
    username: str | None = None


class LogoutResponse(BaseModel):
    message: str = "Logged out"


@router.post("/token", response_model=TokenResponse)
@limiter.limit(CRITICAL_LIMIT)
async def issue_token(request: Request, body: TokenRequest, response: Response) -> TokenResponse:
    """Issue a JWT after checking the API key."""
    settings = _settings_mod.get_settings()
    if is_auth_configured(settings):
        valid = check_api_key(body.api_key, settings)
    else:
        valid = settings.environment != "production"
    if not valid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key.")

    token = create_jwt_token(body.username, settings)
    response.set_cookie(
        key=JWT_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
        max_age=settings.jwt_expiry_hours * 3600,
        path="/",
    )
    return TokenResponse(
        token=token,
        username=body.username,
        expires_in=settings.jwt_expiry_hours * 3600,
    )


@router.get("/me", response_model=MeResponse)
async def me(user: RequireAPIKey) -> MeResponse:
    """Report who the current credentials authenticate as."""
    return MeResponse(authenticated=True, username=user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    """Clear the session cookie."""
    response.delete_cookie(key=JWT_COOKIE_NAME, path="/")
    return LogoutResponse()
