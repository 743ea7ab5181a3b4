"""Shared plumbing for automation lifecycle services."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.dal.automations import ManagedAutomationRepository
from src.dal.connections import ConnectionRepository
from src.exceptions import NotFoundError
from src.ha.client import HAClient
from src.storage.entities.managed_automation import ManagedAutomation


class LifecycleService:
    """Base for services that act on managed automations.

    Args:
        session: Database session (flushed, never committed here)
        ha_client: Optional client override; by default the client of the
            automation's connection is used
    """

    def __init__(self, session: AsyncSession, ha_client: HAClient | None = None):
        self.session = session
        self._ha_client = ha_client
        self.automations = ManagedAutomationRepository(session)
        self.connections = ConnectionRepository(session)

    async def ha_client(self, connection_id: str) -> HAClient:
        if self._ha_client is not None:
            return self._ha_client
        from src.services.connections import ha_client_for

        conn = await self.connections.get_by_id(connection_id)
        if conn is None:
            raise NotFoundError("Connection", connection_id)
        return ha_client_for(conn)

    async def get_automation(
        self, automation_id: str, user_id: str | None = None
    ) -> ManagedAutomation:
        """Load a managed automation, optionally checking connection ownership.

        Raises:
            NotFoundError: If missing or owned by another user.
        """
        automation = await self.automations.get_by_id(automation_id)
        if automation is None:
            raise NotFoundError("Automation", automation_id)
        if user_id is not None:
            conn = await self.connections.get_for_user(automation.connection_id, user_id)
            if conn is None:
                raise NotFoundError("Automation", automation_id)
        return automation
