"""Automation retirement repository."""

from datetime import datetime

from sqlalchemy import select

from src.dal.base import BaseRepository
from src.storage.entities.automation_retirement import AutomationRetirement, RetirementStatus


class RetirementRepository(BaseRepository[AutomationRetirement]):
    """Repository for AutomationRetirement records."""

    model = AutomationRetirement
    order_by_field = "created_at"
    order_desc = True

    async def history(self, automation_id: str) -> list[AutomationRetirement]:
        """Retirement requests for an automation, newest first."""
        result = await self.session.execute(
            select(AutomationRetirement)
            .where(AutomationRetirement.managed_automation_id == automation_id)
            .order_by(AutomationRetirement.created_at.desc())
        )
        return list(result.scalars().all())

    async def due(self, now: datetime) -> list[AutomationRetirement]:
        """PENDING retirements whose scheduled time has passed."""
        result = await self.session.execute(
            select(AutomationRetirement)
            .where(
                AutomationRetirement.status == RetirementStatus.PENDING,
                AutomationRetirement.scheduled_at.is_not(None),
                AutomationRetirement.scheduled_at <= now,
            )
            .order_by(AutomationRetirement.scheduled_at)
        )
        return list(result.scalars().all())
