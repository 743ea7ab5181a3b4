"""Automation backup repository."""

from sqlalchemy import func, select

from src.dal.base import BaseRepository
from src.storage.entities.automation_backup import AutomationBackup


class BackupRepository(BaseRepository[AutomationBackup]):
    """Repository for AutomationBackup rows."""

    model = AutomationBackup
    order_by_field = "created_at"
    order_desc = True

    async def list_for_automation(self, automation_id: str) -> list[AutomationBackup]:
        """All backups of an automation, newest first."""
        result = await self.session.execute(
            select(AutomationBackup)
            .where(AutomationBackup.managed_automation_id == automation_id)
            .order_by(AutomationBackup.created_at.desc())
        )
        return list(result.scalars().all())

    async def automation_ids_with_backups(self) -> list[str]:
        result = await self.session.execute(
            select(AutomationBackup.managed_automation_id)
            .group_by(AutomationBackup.managed_automation_id)
            .having(func.count(AutomationBackup.id) > 0)
        )
        return [row[0] for row in result.all()]
