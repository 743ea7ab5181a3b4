"""Unit tests for deploying new automations."""

import re
from unittest.mock import AsyncMock

import pytest

from src.exceptions import HAClientError
from src.lifecycle import AutomationDeployer, generate_automation_id
from src.lifecycle.deploy import slugify
from src.storage.entities import BackupType, ModificationType


class TestIds:
    def test_slugify(self):
        assert slugify("Turn OFF lights @ 23:00!") == "turn_off_lights_23_00"
        assert slugify("!!!") == "automation"
        assert len(slugify("x" * 100)) == 40

    def test_generate_automation_id(self):
        automation_id = generate_automation_id("Morning lights")
        assert re.fullmatch(r"tappha_morning_lights_[0-9a-f]{8}", automation_id)
        assert generate_automation_id("Morning lights") != automation_id


@pytest.fixture
def deployer(mock_session, mock_ha_client, managed_automation, assign_id) -> AutomationDeployer:
    deployer = AutomationDeployer(mock_session, mock_ha_client)
    deployer.lifecycle = AsyncMock()
    deployer.lifecycle.register.return_value = managed_automation
    deployer.backup_service.backups = AsyncMock()
    deployer.backup_service.backups.add.side_effect = assign_id
    deployer.version_service.versions = AsyncMock()
    deployer.version_service.versions.latest.return_value = None
    deployer.version_service.versions.add.side_effect = assign_id
    return deployer


@pytest.mark.asyncio
class TestDeploy:
    async def test_deploys_and_registers(self, deployer, mock_ha_client, managed_automation):
        config = {"trigger": [{"platform": "sun", "event": "sunset"}], "action": []}

        result = await deployer.deploy(
            "conn-1", "Sunset lights", config, description="Lights at sunset", user_id="u1"
        )

        ha_id, body = mock_ha_client.create_automation.call_args[0]
        assert ha_id.startswith("tappha_sunset_lights_")
        assert body["alias"] == "Sunset lights"
        assert body["description"] == "Lights at sunset"
        assert result.ha_automation_id == ha_id
        assert result.automation is managed_automation

        args = deployer.lifecycle.register.call_args
        assert args[0] == ("conn-1", ha_id, "Sunset lights")
        assert args.kwargs["user_id"] == "u1"
        assert result.backup.backup_type == BackupType.FULL
        assert result.backup.backup_data["id"] == ha_id
        assert result.version.version_number == "v1.1"
        assert result.version.modification_type == ModificationType.CREATE
        assert result.version.backup_id == result.backup.id

    async def test_ha_rejection_registers_nothing(self, deployer, mock_ha_client):
        mock_ha_client.create_automation.side_effect = None
        mock_ha_client.create_automation.return_value = {"success": False, "error": "HTTP 400"}

        with pytest.raises(HAClientError, match="rejected"):
            await deployer.deploy("conn-1", "Broken", {"trigger": []})

        deployer.lifecycle.register.assert_not_awaited()
