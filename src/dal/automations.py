"""Managed automation and lifecycle history repositories."""

from sqlalchemy import select

from src.dal.base import BaseRepository
from src.storage.entities.managed_automation import (
    AutomationLifecycleHistory,
    LifecycleState,
    ManagedAutomation,
)


class ManagedAutomationRepository(BaseRepository[ManagedAutomation]):
    """Repository for ManagedAutomation CRUD operations."""

    model = ManagedAutomation
    order_by_field = "name"

    async def get_by_ha_automation_id(
        self, connection_id: str, ha_automation_id: str
    ) -> ManagedAutomation | None:
        """Get a managed automation by its HA config id within a connection."""
        result = await self.session.execute(
            select(ManagedAutomation).where(
                ManagedAutomation.connection_id == connection_id,
                ManagedAutomation.ha_automation_id == ha_automation_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_connection(
        self,
        connection_id: str,
        state: LifecycleState | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[ManagedAutomation], int]:
        return await self.paginate(
            limit=limit, offset=offset, connection_id=connection_id, lifecycle_state=state
        )

    async def add_history(self, entry: AutomationLifecycleHistory) -> AutomationLifecycleHistory:
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def history(self, automation_id: str, limit: int = 100) -> list[AutomationLifecycleHistory]:
        """Lifecycle transitions, newest first."""
        result = await self.session.execute(
            select(AutomationLifecycleHistory)
            .where(AutomationLifecycleHistory.managed_automation_id == automation_id)
            .order_by(AutomationLifecycleHistory.transition_timestamp.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
