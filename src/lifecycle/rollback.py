"""Rollback of managed automations to an earlier version."""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import TapphaError
from src.ha.client import HAClient
from src.lifecycle.backups import BackupService
from src.lifecycle.base import LifecycleService
from src.lifecycle.versions import VersionService
from src.storage.entities.automation_backup import BackupType
from src.storage.entities.automation_version import AutomationVersion, ModificationType
from src.storage.entities.managed_automation import LifecycleState, ManagedAutomation

logger = logging.getLogger(__name__)


@dataclass
class AutomationModificationResult:
    """Outcome of a modification such as a rollback."""

    success: bool
    modification_type: str
    backup_id: str | None = None
    version_id: str | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RollbackService(LifecycleService):
    """Restores an automation to the configuration of a previous version."""

    def __init__(self, session: AsyncSession, ha_client: HAClient | None = None):
        super().__init__(session, ha_client)
        self.backup_service = BackupService(session, ha_client)
        self.version_service = VersionService(session, ha_client)

    async def validate_rollback(
        self, automation: ManagedAutomation, target_version_id: str
    ) -> list[str]:
        """Return the reasons a rollback is impossible (empty when it is allowed)."""
        errors: list[str] = []
        if automation.lifecycle_state == LifecycleState.RETIRED:
            errors.append("Retired automations cannot be rolled back")

        version = await self.version_service.versions.get_by_id(target_version_id)
        if version is None or version.managed_automation_id != automation.id:
            errors.append(f"Version {target_version_id} not found for this automation")
            return errors
        if not version.backup_id:
            errors.append(f"Version {version.version_number} has no backup")
            return errors

        backup = await self.backup_service.backups.get_by_id(version.backup_id)
        if backup is None:
            errors.append(f"Backup {version.backup_id} no longer exists")
        elif not backup.verify_integrity():
            errors.append(f"Backup {backup.id} failed integrity verification")
        return errors

    async def perform_rollback(
        self,
        automation: ManagedAutomation,
        target_version_id: str,
        user_id: str | None = None,
    ) -> AutomationModificationResult:
        """Back up the current config, restore the target and record a ROLLBACK version."""
        errors = await self.validate_rollback(automation, target_version_id)
        if errors:
            return AutomationModificationResult(
                success=False, modification_type="rollback", errors=errors
            )

        target = await self.version_service.get_version(target_version_id)
        try:
            pre_backup = await self.backup_service.create_backup(
                automation,
                user_id=user_id,
                description=f"Before rollback to {target.version_number}",
                backup_type=BackupType.BEFORE_MODIFICATION,
            )
            await self.backup_service.restore(target.backup_id, user_id)  # type: ignore[arg-type]
            version = await self.version_service.create_version(
                automation,
                ModificationType.ROLLBACK,
                backup_id=pre_backup.id,
                description=f"Rollback to {target.version_number}",
                user_id=user_id,
            )
        except TapphaError as e:
            logger.warning("Rollback of %s failed: %s", automation.ha_automation_id, e)
            return AutomationModificationResult(
                success=False, modification_type="rollback", errors=[str(e)]
            )

        automation.version += 1
        if user_id:
            automation.modified_by = user_id
        await self.session.flush()
        logger.info(
            "Rolled back %s to %s", automation.ha_automation_id, target.version_number
        )
        return AutomationModificationResult(
            success=True,
            modification_type="rollback",
            backup_id=pre_backup.id,
            version_id=version.id,
        )

    async def rollback_targets(self, automation: ManagedAutomation) -> list[AutomationVersion]:
        """Every version except the latest, newest first."""
        return (await self.version_service.history(automation.id))[1:]

    async def rollback_to_previous(
        self, automation: ManagedAutomation, user_id: str | None = None
    ) -> AutomationModificationResult:
        targets = await self.rollback_targets(automation)
        if not targets:
            return AutomationModificationResult(
                success=False,
                modification_type="rollback",
                errors=["At least two versions are required to roll back"],
            )
        return await self.perform_rollback(automation, targets[0].id, user_id)
