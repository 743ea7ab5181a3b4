"""Automation dependency repository."""

from sqlalchemy import select

from src.dal.base import BaseRepository
from src.storage.entities.automation_dependency import AutomationDependency


class DependencyRepository(BaseRepository[AutomationDependency]):
    """Repository for AutomationDependency edges."""

    model = AutomationDependency

    async def incoming(self, automation_id: str) -> list[AutomationDependency]:
        """Active edges whose target is ``automation_id`` (who depends on it)."""
        result = await self.session.execute(
            select(AutomationDependency).where(
                AutomationDependency.target_automation_id == automation_id,
                AutomationDependency.active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def outgoing(self, automation_id: str) -> list[AutomationDependency]:
        """Active edges whose source is ``automation_id`` (what it depends on)."""
        result = await self.session.execute(
            select(AutomationDependency).where(
                AutomationDependency.source_automation_id == automation_id,
                AutomationDependency.active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def find_edge(
        self, source_id: str, target_id: str
    ) -> AutomationDependency | None:
        result = await self.session.execute(
            select(AutomationDependency).where(
                AutomationDependency.source_automation_id == source_id,
                AutomationDependency.target_automation_id == target_id,
                AutomationDependency.active.is_(True),
            )
        )
        return result.scalar_one_or_none()
