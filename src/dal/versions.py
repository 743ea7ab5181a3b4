"""Automation version repository."""

from sqlalchemy import select

from src.dal.base import BaseRepository
from src.storage.entities.automation_version import AutomationVersion


class VersionRepository(BaseRepository[AutomationVersion]):
    """Repository for AutomationVersion rows."""

    model = AutomationVersion
    order_by_field = "sequence"
    order_desc = True

    async def history(self, automation_id: str) -> list[AutomationVersion]:
        """All versions of an automation, newest first."""
        result = await self.session.execute(
            select(AutomationVersion)
            .where(AutomationVersion.managed_automation_id == automation_id)
            .order_by(AutomationVersion.sequence.desc())
        )
        return list(result.scalars().all())

    async def latest(self, automation_id: str) -> AutomationVersion | None:
        result = await self.session.execute(
            select(AutomationVersion)
            .where(AutomationVersion.managed_automation_id == automation_id)
            .order_by(AutomationVersion.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def automation_ids_with_versions(self) -> list[str]:
        result = await self.session.execute(
            select(AutomationVersion.managed_automation_id).group_by(
                AutomationVersion.managed_automation_id
            )
        )
        return [row[0] for row in result.all()]
