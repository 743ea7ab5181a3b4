"""Unit tests for managed automation registration and state changes."""

from unittest.mock import AsyncMock

import pytest

from src.exceptions import HAClientError, LifecycleError, NotFoundError
from src.lifecycle import AutomationLifecycleService
from src.storage.entities import LifecycleState, ManagedAutomation


@pytest.fixture
def service(mock_session, mock_ha_client) -> AutomationLifecycleService:
    service = AutomationLifecycleService(mock_session, mock_ha_client)
    service.automations = AsyncMock()
    service.connections = AsyncMock()
    return service


@pytest.mark.asyncio
class TestRegister:
    async def test_creates_active_automation(self, service):
        service.automations.get_by_ha_automation_id.return_value = None
        service.automations.create.side_effect = lambda values: ManagedAutomation(
            id="auto-1", **values
        )

        automation = await service.register("conn-1", "morning_lights", "Morning lights", user_id="u1")

        assert automation.lifecycle_state == LifecycleState.ACTIVE
        assert automation.is_active is True
        assert automation.version == 1
        entry = service.automations.add_history.call_args[0][0]
        assert entry.previous_state is None
        assert entry.new_state == "ACTIVE"
        assert entry.managed_automation_id == "auto-1"

    async def test_already_managed(self, service, managed_automation):
        service.automations.get_by_ha_automation_id.return_value = managed_automation
        result = await service.register("conn-1", "morning_lights", "Morning lights")
        assert result is managed_automation
        service.automations.create.assert_not_awaited()

    async def test_unknown_connection(self, service):
        service.automations.get_by_ha_automation_id.return_value = None
        service.connections.get_by_id.return_value = None
        with pytest.raises(NotFoundError):
            await service.register("conn-9", "x", "X")


@pytest.mark.asyncio
class TestOwnership:
    async def test_missing(self, service):
        service.automations.get_by_id.return_value = None
        with pytest.raises(NotFoundError):
            await service.get("auto-9")

    async def test_foreign_user(self, service, managed_automation):
        service.automations.get_by_id.return_value = managed_automation
        service.connections.get_for_user.return_value = None
        with pytest.raises(NotFoundError):
            await service.get("auto-1", "u2")


@pytest.mark.asyncio
class TestStateChanges:
    async def test_deactivate(self, service, managed_automation, mock_ha_client):
        service.automations.get_by_id.return_value = managed_automation

        result = await service.deactivate("auto-1", "u1", reason="holiday")

        mock_ha_client.turn_off_automation.assert_awaited_once_with("morning_lights")
        assert result.lifecycle_state == LifecycleState.INACTIVE
        assert result.is_active is False
        assert result.modified_by == "u1"
        entry = service.automations.add_history.call_args[0][0]
        assert (entry.previous_state, entry.new_state) == ("ACTIVE", "INACTIVE")
        assert entry.transition_reason == "holiday"

    async def test_activate_inactive(self, service, managed_automation, mock_ha_client):
        managed_automation.lifecycle_state = LifecycleState.INACTIVE
        service.automations.get_by_id.return_value = managed_automation
        result = await service.activate("auto-1")
        mock_ha_client.turn_on_automation.assert_awaited_once_with("morning_lights")
        assert result.lifecycle_state == LifecycleState.ACTIVE

    async def test_invalid_transition_skips_ha(self, service, managed_automation, mock_ha_client):
        service.automations.get_by_id.return_value = managed_automation
        with pytest.raises(LifecycleError):
            await service.activate("auto-1")
        mock_ha_client.turn_on_automation.assert_not_awaited()

    async def test_retired_is_terminal(self, service, managed_automation):
        managed_automation.lifecycle_state = LifecycleState.RETIRED
        service.automations.get_by_id.return_value = managed_automation
        with pytest.raises(LifecycleError):
            await service.activate("auto-1")

    async def test_ha_failure_keeps_state(self, service, managed_automation, mock_ha_client):
        service.automations.get_by_id.return_value = managed_automation
        mock_ha_client.turn_off_automation.return_value = {"success": False, "error": "HTTP 500"}
        with pytest.raises(HAClientError):
            await service.deactivate("auto-1")
        assert managed_automation.lifecycle_state == LifecycleState.ACTIVE
        service.automations.add_history.assert_not_awaited()


@pytest.mark.asyncio
class TestClientLookup:
    async def test_missing_connection(self, mock_session):
        service = AutomationLifecycleService(mock_session)
        service.connections = AsyncMock()
        service.connections.get_by_id.return_value = None
        with pytest.raises(NotFoundError):
            await service.ha_client("conn-9")
