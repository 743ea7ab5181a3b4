"""Unit tests for the FastAPI application factory.

Covers the error envelope, error-to-status mapping, request IDs,
security headers and the body size limit.
"""

from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from src.api.main import status_for
from src.api.rate_limit import MAX_REQUEST_BODY_BYTES
from src.exceptions import (
    ConfigurationError,
    ConflictError,
    DALError,
    HAClientError,
    LifecycleError,
    LLMError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)


def _raiser(exc: Exception):
    async def _endpoint():
        raise exc

    return _endpoint


class TestStatusFor:
    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (ValidationError("bad"), 400),
            (NotFoundError("Connection", "c1"), 404),
            (ConflictError("dup"), 409),
            (LifecycleError("retired"), 409),
            (RateLimitExceededError("slow down", retry_after=3), 429),
            (HAClientError("unauthorized", status_code=401), 401),
            (HAClientError("timeout"), 502),
            (HAClientError("redirect", status_code=302), 502),
            (LLMError("provider down"), 502),
            (DALError("db"), 500),
            (ConfigurationError("missing"), 500),
        ],
    )
    def test_mapping(self, exc, expected):
        assert status_for(exc) == expected


@pytest.mark.asyncio
class TestErrorEnvelope:
    async def test_not_found_envelope(self, api_app, api_client):
        api_app.add_api_route("/boom", _raiser(NotFoundError("Connection", "c1")))

        response = await api_client.get("/boom")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == 404
        assert error["message"] == "Connection not found: c1"
        assert error["type"] == "notfound_error"
        assert error["correlation_id"] == response.headers["X-Request-ID"]

    async def test_validation_error_carries_field_errors(self, api_app, api_client):
        api_app.add_api_route(
            "/boom", _raiser(ValidationError("Invalid rule", errors=["name is required"]))
        )

        response = await api_client.get("/boom")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["type"] == "validation_error"
        assert error["message"] == {"detail": "Invalid rule", "errors": ["name is required"]}

    async def test_rate_limit_sets_retry_after(self, api_app, api_client):
        api_app.add_api_route("/boom", _raiser(RateLimitExceededError("busy", retry_after=2.4)))

        response = await api_client.get("/boom")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "2"

    async def test_lifecycle_error_is_conflict(self, api_app, api_client):
        api_app.add_api_route("/boom", _raiser(LifecycleError("Automation is retired")))

        response = await api_client.get("/boom")

        assert response.status_code == 409
        assert response.json()["error"]["type"] == "lifecycle_error"

    async def test_server_errors_sanitized_outside_debug(self, test_settings, monkeypatch):
        from src import settings as settings_mod
        from src.api import main

        quiet = test_settings.model_copy(update={"debug": False})
        monkeypatch.setattr(settings_mod, "get_settings", lambda: quiet)
        monkeypatch.setattr(main, "get_settings", lambda: quiet)
        app = main.create_app(quiet)
        app.add_api_route("/boom", _raiser(LLMError("secret provider detail")))

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/boom", headers={"X-Request-ID": "req-42"})

        assert response.status_code == 502
        message = response.json()["error"]["message"]
        assert "secret provider detail" not in message
        assert "req-42" in message

    async def test_server_errors_detailed_in_debug(self, api_app, api_client):
        api_app.add_api_route("/boom", _raiser(LLMError("provider detail")))

        response = await api_client.get("/boom")

        assert response.status_code == 502
        assert response.json()["error"]["message"] == "provider detail"

    async def test_unhandled_exception_is_internal_error(self, api_app, api_client):
        api_app.add_api_route("/boom", _raiser(RuntimeError("kaboom")))

        response = await api_client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["type"] == "internal_error"

    async def test_unknown_route_uses_envelope(self, api_client):
        response = await api_client.get("/api/v1/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"]["type"] == "http_error"

    async def test_request_validation_is_422(self, api_client):
        response = await api_client.post("/api/v1/auth/token", json={})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["type"] == "validation_error"
        fields = {e["field"] for e in error["message"]["errors"]}
        assert "body.username" in fields


@pytest.mark.asyncio
class TestMiddleware:
    async def test_request_id_echoed(self, api_client):
        response = await api_client.get("/api/v1/health", headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"

    async def test_request_id_generated(self, api_client):
        response = await api_client.get("/api/v1/health")

        assert len(response.headers["X-Request-ID"]) == 36

    async def test_security_headers(self, api_client):
        response = await api_client.get("/api/v1/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"
        assert "Strict-Transport-Security" not in response.headers

    async def test_oversized_body_rejected(self, api_client):
        response = await api_client.post(
            "/api/v1/auth/token",
            content=b"x" * (MAX_REQUEST_BODY_BYTES + 1),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 413
        assert response.json()["error"]["type"] == "request_too_large"


class TestAllowedOrigins:
    def test_explicit_origins_win(self, test_settings):
        from src.api.main import _get_allowed_origins

        settings = test_settings.model_copy(
            update={"allowed_origins": "https://a.example, https://b.example"}
        )
        assert _get_allowed_origins(settings) == ["https://a.example", "https://b.example"]

    def test_open_in_testing(self, test_settings):
        from src.api.main import _get_allowed_origins

        assert _get_allowed_origins(test_settings) == ["*"]

    def test_closed_in_production(self, test_settings):
        from src.api.main import _get_allowed_origins

        settings = test_settings.model_copy(update={"environment": "production"})
        assert _get_allowed_origins(settings) == []


class TestGetApp:
    def test_singleton(self, monkeypatch):
        from src.api import main

        created = MagicMock()
        monkeypatch.setattr(main, "_app", None)
        monkeypatch.setattr(main, "create_app", lambda: created)

        assert main.get_app() is created
        assert main.get_app() is created
        assert main.app is created

    def test_unknown_attribute(self):
        from src.api import main

        with pytest.raises(AttributeError):
            main.not_a_thing  # noqa: B018
