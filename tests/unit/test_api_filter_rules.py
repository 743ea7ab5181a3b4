"""Unit tests for the event filter rule routes."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.exceptions import NotFoundError, ValidationError
from src.services.connections import page
from src.storage.entities.filter_rule import EventFilterRule, RuleAction, RuleType


def _rule(**overrides) -> EventFilterRule:
    fields = {
        "id": "rule-1",
        "user_id": "anonymous",
        "rule_name": "Ignore sun",
        "rule_type": RuleType.ENTITY,
        "action": RuleAction.BLOCK,
        "priority": 10,
        "enabled": True,
        "entity_patterns": "sun.*",
        "time_window_minutes": 60,
        "match_count": 0,
    }
    fields.update(overrides)
    return EventFilterRule(**fields)


@pytest.fixture
def service(monkeypatch) -> AsyncMock:
    svc = AsyncMock()
    monkeypatch.setattr(
        "src.api.routes.filter_rules.FilterRuleService", MagicMock(return_value=svc)
    )
    return svc


@pytest.mark.asyncio
class TestFilterRuleRoutes:
    async def test_create(self, api_client, override_db, service):
        service.create.return_value = _rule()

        response = await api_client.post(
            "/api/v1/event-filter-rules",
            json={
                "rule_name": "Ignore sun",
                "rule_type": "ENTITY",
                "action": "BLOCK",
                "entity_patterns": "sun.*",
            },
        )

        assert response.status_code == 201
        assert response.json()["action"] == "BLOCK"
        user, data = service.create.await_args.args
        assert user == "anonymous"
        assert "priority" not in data
        override_db.commit.assert_awaited_once()

    async def test_create_invalid_rule(self, api_client, override_db, service):
        service.create.side_effect = ValidationError(
            "Invalid filter rule", errors=["THROTTLE rules need frequency_limit"]
        )

        response = await api_client.post(
            "/api/v1/event-filter-rules",
            json={"rule_name": "Throttle", "rule_type": "FREQUENCY", "action": "THROTTLE"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"]["errors"] == [
            "THROTTLE rules need frequency_limit"
        ]

    async def test_unknown_action(self, api_client, override_db, service):
        response = await api_client.post(
            "/api/v1/event-filter-rules",
            json={"rule_name": "x", "rule_type": "ENTITY", "action": "DROP"},
        )

        assert response.status_code == 422

    async def test_list(self, api_client, override_db, service):
        service.list_rules.return_value = page([_rule(), _rule(id="rule-2", priority=20)], 2, 50, 0)

        response = await api_client.get("/api/v1/event-filter-rules", params={"enabled": "true"})

        assert response.status_code == 200
        assert [r["id"] for r in response.json()["items"]] == ["rule-1", "rule-2"]
        assert service.list_rules.await_args.kwargs["enabled"] is True

    async def test_statistics(self, api_client, override_db, service):
        service.statistics.return_value = {
            "total_rules": 3,
            "enabled_rules": 2,
            "total_matches": 40,
            "by_rule_type": {"ENTITY": {"rules": 3, "matches": 40}},
        }

        response = await api_client.get("/api/v1/event-filter-rules/statistics")

        assert response.status_code == 200
        assert response.json()["total_matches"] == 40

    async def test_most_active(self, api_client, override_db, service):
        service.most_active.return_value = [_rule(match_count=12)]

        response = await api_client.get("/api/v1/event-filter-rules/most-active", params={"limit": 5})

        assert response.json()[0]["match_count"] == 12
        service.most_active.assert_awaited_once_with("anonymous", 5)

    async def test_for_connection(self, api_client, override_db, service):
        service.enabled_for_connection.return_value = [_rule(connection_id="conn-1")]

        response = await api_client.get("/api/v1/event-filter-rules/connection/conn-1")

        assert response.json()[0]["connection_id"] == "conn-1"

    async def test_get_missing(self, api_client, override_db, service):
        service.get.side_effect = NotFoundError("Filter rule", "nope")

        response = await api_client.get("/api/v1/event-filter-rules/nope")

        assert response.status_code == 404

    async def test_update_only_sends_set_fields(self, api_client, override_db, service):
        service.update.return_value = _rule(priority=5)

        response = await api_client.put("/api/v1/event-filter-rules/rule-1", json={"priority": 5})

        assert response.status_code == 200
        service.update.assert_awaited_once_with("anonymous", "rule-1", {"priority": 5})

    async def test_toggle(self, api_client, override_db, service):
        service.toggle.return_value = _rule(enabled=False)

        response = await api_client.post(
            "/api/v1/event-filter-rules/rule-1/toggle", json={"enabled": False}
        )

        assert response.json()["enabled"] is False

    async def test_bulk_toggle(self, api_client, override_db, service):
        service.bulk_toggle.return_value = 2

        response = await api_client.post(
            "/api/v1/event-filter-rules/bulk-toggle",
            json={"rule_ids": ["rule-1", "rule-2"], "enabled": True},
        )

        assert response.json() == {"updated": 2}

    async def test_delete(self, api_client, override_db, service):
        response = await api_client.delete("/api/v1/event-filter-rules/rule-1")

        assert response.status_code == 204
        service.delete.assert_awaited_once_with("anonymous", "rule-1")
