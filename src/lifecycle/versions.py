"""Automation version history."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.dal.backups import BackupRepository
from src.dal.versions import VersionRepository
from src.exceptions import NotFoundError
from src.ha.client import HAClient
from src.lifecycle.base import LifecycleService
from src.storage.entities.automation_version import (
    AutomationVersion,
    ModificationType,
    format_version_number,
)
from src.storage.entities.managed_automation import ManagedAutomation

logger = logging.getLogger(__name__)


def diff_configs(old: dict[str, Any] | None, new: dict[str, Any] | None) -> dict[str, Any]:
    """Top-level key changes between two configs."""
    old = old or {}
    new = new or {}
    return {
        "added": {k: new[k] for k in new.keys() - old.keys()},
        "removed": {k: old[k] for k in old.keys() - new.keys()},
        "changed": {
            k: {"from": old[k], "to": new[k]}
            for k in old.keys() & new.keys()
            if old[k] != new[k]
        },
    }


class VersionService(LifecycleService):
    """Creates and inspects numbered versions of managed automations."""

    def __init__(self, session: AsyncSession, ha_client: HAClient | None = None):
        super().__init__(session, ha_client)
        self.versions = VersionRepository(session)
        self.backups = BackupRepository(session)

    async def create_version(
        self,
        automation: ManagedAutomation,
        modification_type: ModificationType,
        *,
        backup_id: str | None = None,
        description: str | None = None,
        user_id: str | None = None,
    ) -> AutomationVersion:
        """Append ``v1.N`` linked to the current latest version."""
        previous = await self.versions.latest(automation.id)
        sequence = previous.sequence + 1 if previous else 1
        version = AutomationVersion(
            managed_automation_id=automation.id,
            connection_id=automation.connection_id,
            backup_id=backup_id,
            previous_version_id=previous.id if previous else None,
            sequence=sequence,
            version_number=format_version_number(sequence),
            modification_type=modification_type,
            description=description,
            created_by=user_id,
        )
        await self.versions.add(version)
        logger.info(
            "Created version %s (%s) of %s",
            version.version_number,
            modification_type.value,
            automation.ha_automation_id,
        )
        return version

    async def get_version(self, version_id: str) -> AutomationVersion:
        version = await self.versions.get_by_id(version_id)
        if version is None:
            raise NotFoundError("Version", version_id)
        return version

    async def exists(self, version_id: str) -> bool:
        return await self.versions.get_by_id(version_id) is not None

    async def history(self, automation_id: str) -> list[AutomationVersion]:
        return await self.versions.history(automation_id)

    async def latest(self, automation_id: str) -> AutomationVersion | None:
        return await self.versions.latest(automation_id)

    async def _backup_data(self, version: AutomationVersion) -> dict[str, Any] | None:
        if not version.backup_id:
            return None
        backup = await self.backups.get_by_id(version.backup_id)
        return backup.backup_data if backup else None

    async def compare(self, version_a_id: str, version_b_id: str) -> dict[str, Any]:
        """Differences from version A to version B."""
        a = await self.get_version(version_a_id)
        b = await self.get_version(version_b_id)
        time_diff = None
        if a.created_at is not None and b.created_at is not None:
            time_diff = (b.created_at - a.created_at).total_seconds()
        return {
            "version_a": a.version_number,
            "version_b": b.version_number,
            "modification_type_changed": a.modification_type != b.modification_type,
            "description_changed": a.description != b.description,
            "time_difference_seconds": time_diff,
            "data_changes": diff_configs(await self._backup_data(a), await self._backup_data(b)),
        }

    async def statistics(self, automation_id: str) -> dict[str, Any]:
        history = await self.versions.history(automation_id)
        by_type: dict[str, int] = {}
        for version in history:
            key = version.modification_type.value
            by_type[key] = by_type.get(key, 0) + 1
        latest = history[0] if history else None
        first = history[-1] if history else None
        return {
            "total_versions": len(history),
            "latest_version": latest.version_number if latest else None,
            "first_version": first.version_number if first else None,
            "last_modified": latest.created_at if latest else None,
            "by_modification_type": by_type,
        }

    async def delete_version(self, version_id: str) -> None:
        version = await self.get_version(version_id)
        await self.versions.delete(version)

    async def cleanup_old_versions(self, max_versions: int) -> int:
        """Keep only the newest ``max_versions`` versions of every automation."""
        removed = 0
        for automation_id in await self.versions.automation_ids_with_versions():
            history = await self.versions.history(automation_id)
            for version in history[max_versions:]:
                await self.versions.delete(version)
                removed += 1
        if removed:
            logger.info("Removed %d old automation versions", removed)
        return removed
