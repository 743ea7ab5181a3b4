"""Automation config and state management.

Provides methods for creating, reading, deleting and toggling automations
through HA's config API and automation services.
"""

from typing import Any

import structlog

from src.ha.base import HAClientError

logger = structlog.get_logger(__name__)


class AutomationMixin:
    """Mixin providing automation operations."""

    async def create_automation(
        self,
        automation_id: str,
        config: dict[str, Any],
    ) -> dict[str, Any]:
        """Create or update an automation via HA REST API.

        Args:
            automation_id: Unique automation ID (e.g., "tappha_motion_lights_1a2b3c4d")
            config: Automation configuration (alias, trigger, condition, action, mode)

        Returns:
            Result dict with success status
        """
        body = {**config, "id": automation_id}
        try:
            # POST to config API creates or updates the automation
            await self._request(  # type: ignore[attr-defined]
                "POST",
                f"/api/config/automation/config/{automation_id}",
                json=body,
            )
            return {
                "success": True,
                "automation_id": automation_id,
                "entity_id": f"automation.{automation_id}",
                "config": body,
            }
        except HAClientError as e:
            logger.warning("automation_create_failed", automation_id=automation_id, error=str(e))
            return {
                "success": False,
                "automation_id": automation_id,
                "error": str(e),
            }

    async def get_automation_config(
        self,
        automation_id: str,
    ) -> dict[str, Any] | None:
        """Get an automation's configuration.

        Returns:
            Automation config or None if not found
        """
        return await self._request(  # type: ignore[attr-defined]
            "GET",
            f"/api/config/automation/config/{automation_id}",
        )

    async def turn_on_automation(self, automation_id: str) -> dict[str, Any]:
        """Enable an automation (``automation.turn_on``)."""
        return await self._toggle(automation_id, "turn_on")

    async def turn_off_automation(self, automation_id: str) -> dict[str, Any]:
        """Disable an automation (``automation.turn_off``)."""
        return await self._toggle(automation_id, "turn_off")

    async def _toggle(self, automation_id: str, service: str) -> dict[str, Any]:
        entity_id = f"automation.{automation_id}"
        try:
            await self.call_service(  # type: ignore[attr-defined]
                "automation", service, {"entity_id": entity_id}
            )
            return {"success": True, "entity_id": entity_id, "service": service}
        except HAClientError as e:
            return {"success": False, "entity_id": entity_id, "service": service, "error": str(e)}
