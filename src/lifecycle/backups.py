"""Automation configuration backups."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.dal.backups import BackupRepository
from src.exceptions import HAClientError, LifecycleError, NotFoundError
from src.ha.client import HAClient
from src.lifecycle.base import LifecycleService
from src.storage.entities.automation_backup import AutomationBackup, BackupType
from src.storage.entities.managed_automation import ManagedAutomation

logger = logging.getLogger(__name__)


class BackupService(LifecycleService):
    """Takes, verifies, restores and prunes configuration snapshots."""

    def __init__(self, session: AsyncSession, ha_client: HAClient | None = None):
        super().__init__(session, ha_client)
        self.backups = BackupRepository(session)

    async def create_backup(
        self,
        automation: ManagedAutomation,
        user_id: str | None = None,
        description: str | None = None,
        backup_type: BackupType = BackupType.MANUAL,
    ) -> AutomationBackup:
        """Snapshot the automation's current config from HA.

        Raises:
            NotFoundError: If HA has no config for the automation.
        """
        client = await self.ha_client(automation.connection_id)
        config = await client.get_automation_config(automation.ha_automation_id)
        if not config:
            raise NotFoundError("Automation config", automation.ha_automation_id)
        return await self.backup_config(
            automation, config, user_id=user_id, description=description, backup_type=backup_type
        )

    async def backup_config(
        self,
        automation: ManagedAutomation,
        config: dict[str, Any],
        *,
        user_id: str | None = None,
        description: str | None = None,
        backup_type: BackupType = BackupType.FULL,
    ) -> AutomationBackup:
        """Store an already known config as a backup."""
        backup = AutomationBackup.from_config(
            managed_automation_id=automation.id,
            connection_id=automation.connection_id,
            config=config,
            backup_type=backup_type,
            description=description,
            created_by=user_id,
        )
        await self.backups.add(backup)
        logger.info(
            "Backed up %s (%s, %d bytes)",
            automation.ha_automation_id,
            backup_type.value,
            backup.size_bytes,
        )
        return backup

    async def get(self, backup_id: str) -> AutomationBackup:
        backup = await self.backups.get_by_id(backup_id)
        if backup is None:
            raise NotFoundError("Backup", backup_id)
        return backup

    async def list_for_automation(self, automation_id: str) -> list[AutomationBackup]:
        return await self.backups.list_for_automation(automation_id)

    @staticmethod
    def validate_integrity(backup: AutomationBackup) -> bool:
        return backup.verify_integrity()

    async def restore(self, backup_id: str, user_id: str | None = None) -> AutomationBackup:
        """Push a verified backup back to HA.

        Raises:
            LifecycleError: If the backup fails its integrity check.
            HAClientError: If HA rejects the config.
        """
        backup = await self.get(backup_id)
        if not self.validate_integrity(backup):
            raise LifecycleError(f"Backup {backup_id} failed integrity verification")

        automation = await self.get_automation(backup.managed_automation_id)
        client = await self.ha_client(automation.connection_id)
        result = await client.create_automation(automation.ha_automation_id, backup.backup_data)
        if not result.get("success"):
            raise HAClientError(
                f"Restore of {automation.ha_automation_id} failed: {result.get('error')}",
                "restore_backup",
            )
        if user_id:
            automation.modified_by = user_id
        logger.info("Restored %s from backup %s", automation.ha_automation_id, backup_id)
        return backup

    async def delete(self, backup_id: str) -> None:
        backup = await self.get(backup_id)
        await self.backups.delete(backup)

    async def cleanup_old_backups(self, max_per_automation: int) -> int:
        """Delete the oldest backups beyond ``max_per_automation`` for every automation."""
        removed = 0
        for automation_id in await self.backups.automation_ids_with_backups():
            backups = await self.backups.list_for_automation(automation_id)
            for backup in backups[max_per_automation:]:
                await self.backups.delete(backup)
                removed += 1
        if removed:
            logger.info("Removed %d old automation backups", removed)
        return removed
