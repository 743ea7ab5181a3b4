"""Unit tests for the per-connection HA REST client."""

import json

import httpx
import pytest

from src.exceptions import HAClientError
from src.ha.base import extract_version
from src.ha.client import HAClient, HAClientConfig, get_ha_client_for, reset_ha_client


@pytest.fixture(autouse=True)
def reset_clients():
    """Reset client cache between tests."""
    reset_ha_client()
    yield
    reset_ha_client()


def _client(handler) -> HAClient:
    client = HAClient(HAClientConfig(ha_url="http://ha.local:8123/", ha_token="tok"))
    client._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


class TestClientCache:
    def test_same_connection_is_cached(self):
        c1 = get_ha_client_for("conn-1", "http://ha.local:8123", "tok")
        c2 = get_ha_client_for("conn-1", "http://ha.local:8123", "tok")
        assert c1 is c2

    def test_changed_token_replaces_client(self):
        c1 = get_ha_client_for("conn-1", "http://ha.local:8123", "tok")
        c2 = get_ha_client_for("conn-1", "http://ha.local:8123", "new-tok")
        assert c1 is not c2
        assert c2.config.ha_token == "new-tok"

    def test_connections_get_separate_clients(self):
        assert get_ha_client_for("a", "http://ha:8123", "t") is not get_ha_client_for(
            "b", "http://ha:8123", "t"
        )

    def test_reset_single(self):
        from src.ha import client as _mod

        get_ha_client_for("a", "http://ha:8123", "t")
        get_ha_client_for("b", "http://ha:8123", "t")
        reset_ha_client("a")
        assert "a" not in _mod._clients
        assert "b" in _mod._clients


@pytest.mark.asyncio
class TestRequest:
    async def test_sends_bearer_token_and_parses_json(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"version": "2025.1.0"})

        client = _client(handler)
        assert await client.get_version() == "2025.1.0"
        assert seen["auth"] == "Bearer tok"
        assert seen["url"] == "http://ha.local:8123/api/config"

    async def test_404_returns_none(self):
        client = _client(lambda request: httpx.Response(404))
        assert await client.get_automation_config("missing") is None

    async def test_error_status_raises_with_status_code(self):
        client = _client(lambda request: httpx.Response(401, text="unauthorized"))
        with pytest.raises(HAClientError) as exc_info:
            await client.get_config()
        assert exc_info.value.status_code == 401

    async def test_connect_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        with pytest.raises(HAClientError, match="Connection failed"):
            await client.get_config()

    async def test_empty_body_returns_empty_dict(self):
        client = _client(lambda request: httpx.Response(200))
        assert await client.call_service("light", "turn_on") == {}


@pytest.mark.asyncio
class TestAutomationMixin:
    async def test_create_automation_posts_config_with_id(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"result": "ok"})

        client = _client(handler)
        result = await client.create_automation("tappha_x", {"alias": "X", "trigger": []})

        assert result["success"] is True
        assert result["entity_id"] == "automation.tappha_x"
        method, path, body = bodies[0]
        assert method == "POST"
        assert path == "/api/config/automation/config/tappha_x"
        assert body["id"] == "tappha_x"

    async def test_create_automation_failure_is_reported(self):
        client = _client(lambda request: httpx.Response(400, text="bad config"))
        result = await client.create_automation("tappha_x", {"alias": "X"})
        assert result["success"] is False
        assert "400" in result["error"]

    async def test_turn_off_calls_service(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json=[])

        client = _client(handler)
        result = await client.turn_off_automation("morning")
        assert result["success"] is True
        assert calls == [("/api/services/automation/turn_off", {"entity_id": "automation.morning"})]

    async def test_get_automation_config_missing(self):
        client = _client(lambda request: httpx.Response(404))
        assert await client.get_automation_config("missing") is None


class TestExtractVersion:
    def test_top_level_version(self):
        assert extract_version({"version": "2024.6.1"}) == "2024.6.1"

    def test_version_info(self):
        assert extract_version({"version_info": {"version": "2024.2.0"}}) == "2024.2.0"

    def test_unknown(self):
        assert extract_version({}) == "unknown"
