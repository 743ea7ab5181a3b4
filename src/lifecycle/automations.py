"""Managed automation registration and state changes."""

import logging
from typing import Any

from src.exceptions import HAClientError, LifecycleError, NotFoundError
from src.lifecycle.base import LifecycleService
from src.storage.entities.managed_automation import (
    AutomationLifecycleHistory,
    LifecycleState,
    ManagedAutomation,
)
from src.storage.models import utcnow

logger = logging.getLogger(__name__)


class AutomationLifecycleService(LifecycleService):
    """Registers automations and moves them through their lifecycle."""

    async def register(
        self,
        connection_id: str,
        ha_automation_id: str,
        name: str,
        *,
        description: str | None = None,
        user_id: str | None = None,
        state: LifecycleState = LifecycleState.ACTIVE,
    ) -> ManagedAutomation:
        """Register an HA automation; returns the existing row if already managed."""
        existing = await self.automations.get_by_ha_automation_id(connection_id, ha_automation_id)
        if existing is not None:
            return existing

        if await self.connections.get_by_id(connection_id) is None:
            raise NotFoundError("Connection", connection_id)

        automation = await self.automations.create(
            {
                "connection_id": connection_id,
                "ha_automation_id": ha_automation_id,
                "name": name,
                "description": description,
                "lifecycle_state": state,
                "is_active": state == LifecycleState.ACTIVE,
                "version": 1,
                "execution_count": 0,
                "created_by": user_id,
                "modified_by": user_id,
            }
        )
        await self.automations.add_history(
            AutomationLifecycleHistory(
                managed_automation_id=automation.id,
                previous_state=None,
                new_state=state.value,
                transition_reason="registered",
                transitioned_by=user_id,
                transition_timestamp=utcnow(),
            )
        )
        logger.info("Registered managed automation %s (%s)", ha_automation_id, automation.id)
        return automation

    async def get(self, automation_id: str, user_id: str | None = None) -> ManagedAutomation:
        return await self.get_automation(automation_id, user_id)

    async def list_for_connection(
        self,
        user_id: str,
        connection_id: str,
        state: LifecycleState | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[ManagedAutomation], int]:
        if await self.connections.get_for_user(connection_id, user_id) is None:
            raise NotFoundError("Connection", connection_id)
        return await self.automations.list_for_connection(
            connection_id, state=state, limit=limit, offset=offset
        )

    async def transition(
        self,
        automation: ManagedAutomation,
        new_state: LifecycleState,
        *,
        reason: str | None = None,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AutomationLifecycleHistory:
        """Validate and apply a state change, recording it in the history."""
        entry = automation.transition_to(
            new_state, reason=reason, user_id=user_id, metadata=metadata
        )
        await self.automations.add_history(entry)
        return entry

    async def activate(
        self, automation_id: str, user_id: str | None = None, reason: str | None = None
    ) -> ManagedAutomation:
        """Turn the automation on in HA and mark it ACTIVE."""
        automation = await self.get_automation(automation_id, user_id)
        self._check(automation, LifecycleState.ACTIVE)
        client = await self.ha_client(automation.connection_id)
        result = await client.turn_on_automation(automation.ha_automation_id)
        if not result.get("success"):
            raise HAClientError(
                f"Failed to enable {automation.entity_id}: {result.get('error')}",
                "automation.turn_on",
            )
        await self.transition(automation, LifecycleState.ACTIVE, reason=reason, user_id=user_id)
        return automation

    async def deactivate(
        self, automation_id: str, user_id: str | None = None, reason: str | None = None
    ) -> ManagedAutomation:
        """Turn the automation off in HA and mark it INACTIVE."""
        automation = await self.get_automation(automation_id, user_id)
        self._check(automation, LifecycleState.INACTIVE)
        client = await self.ha_client(automation.connection_id)
        result = await client.turn_off_automation(automation.ha_automation_id)
        if not result.get("success"):
            raise HAClientError(
                f"Failed to disable {automation.entity_id}: {result.get('error')}",
                "automation.turn_off",
            )
        await self.transition(automation, LifecycleState.INACTIVE, reason=reason, user_id=user_id)
        return automation

    @staticmethod
    def _check(automation: ManagedAutomation, new_state: LifecycleState) -> None:
        if not automation.can_transition_to(new_state):
            raise LifecycleError(
                f"Cannot move automation {automation.ha_automation_id} from "
                f"{automation.lifecycle_state.value} to {new_state.value}"
            )

    async def history(
        self, automation_id: str, user_id: str | None = None, limit: int = 100
    ) -> list[AutomationLifecycleHistory]:
        automation = await self.get_automation(automation_id, user_id)
        return await self.automations.history(automation.id, limit=limit)
