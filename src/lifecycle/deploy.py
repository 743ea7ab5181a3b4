"""Deploys new automations to Home Assistant and puts them under management."""

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import HAClientError
from src.ha.client import HAClient
from src.lifecycle.automations import AutomationLifecycleService
from src.lifecycle.backups import BackupService
from src.lifecycle.base import LifecycleService
from src.lifecycle.versions import VersionService
from src.storage.entities.automation_backup import AutomationBackup, BackupType
from src.storage.entities.automation_version import AutomationVersion, ModificationType
from src.storage.entities.managed_automation import ManagedAutomation

logger = logging.getLogger(__name__)

AUTOMATION_ID_PREFIX = "tappha"
_MAX_SLUG = 40


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")
    return slug[:_MAX_SLUG].rstrip("_") or "automation"


def generate_automation_id(title: str) -> str:
    """``tappha_<slug(title)>_<8 hex>``."""
    return f"{AUTOMATION_ID_PREFIX}_{slugify(title)}_{uuid.uuid4().hex[:8]}"


@dataclass
class DeploymentResult:
    """A newly deployed and registered automation."""

    automation: ManagedAutomation
    backup: AutomationBackup
    version: AutomationVersion
    ha_automation_id: str


class AutomationDeployer(LifecycleService):
    """Creates the HA config, the managed row, its first backup and version ``v1.1``."""

    def __init__(self, session: AsyncSession, ha_client: HAClient | None = None):
        super().__init__(session, ha_client)
        self.lifecycle = AutomationLifecycleService(session, ha_client)
        self.backup_service = BackupService(session, ha_client)
        self.version_service = VersionService(session, ha_client)

    async def deploy(
        self,
        connection_id: str,
        title: str,
        config: dict[str, Any],
        *,
        description: str | None = None,
        user_id: str | None = None,
    ) -> DeploymentResult:
        """Deploy ``config`` under a fresh id.

        Raises:
            HAClientError: If HA rejects the configuration.
        """
        ha_automation_id = generate_automation_id(title)
        body = {"alias": title, **config}
        if description and "description" not in body:
            body["description"] = description

        client = await self.ha_client(connection_id)
        result = await client.create_automation(ha_automation_id, body)
        if not result.get("success"):
            raise HAClientError(
                f"Home Assistant rejected automation {ha_automation_id}: {result.get('error')}",
                "deploy_automation",
            )
        deployed = result.get("config", {**body, "id": ha_automation_id})

        automation = await self.lifecycle.register(
            connection_id,
            ha_automation_id,
            title,
            description=description,
            user_id=user_id,
        )
        backup = await self.backup_service.backup_config(
            automation,
            deployed,
            user_id=user_id,
            description="Initial configuration",
            backup_type=BackupType.FULL,
        )
        version = await self.version_service.create_version(
            automation,
            ModificationType.CREATE,
            backup_id=backup.id,
            description=f"Created {title}",
            user_id=user_id,
        )
        logger.info("Deployed %s as %s", title, ha_automation_id)
        return DeploymentResult(
            automation=automation,
            backup=backup,
            version=version,
            ha_automation_id=ha_automation_id,
        )
