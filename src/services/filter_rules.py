"""Event filtering rule management."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.dal.connections import ConnectionRepository
from src.dal.filter_rules import FilterRuleRepository
from src.exceptions import ConflictError, NotFoundError, ValidationError
from src.services.connections import page
from src.storage.entities.filter_rule import CONDITION_KEYS, EventFilterRule

logger = logging.getLogger(__name__)

_UPDATABLE = {
    "rule_name",
    "rule_type",
    "action",
    "conditions",
    "priority",
    "enabled",
    "description",
    "event_types",
    "entity_patterns",
    "frequency_limit",
    "time_window_minutes",
    "connection_id",
}


class FilterRuleService:
    """CRUD and statistics for a user's event filtering rules."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = FilterRuleRepository(session)
        self.connections = ConnectionRepository(session)

    async def _check_connection(self, user_id: str, connection_id: str | None) -> None:
        if connection_id and await self.connections.get_for_user(connection_id, user_id) is None:
            raise NotFoundError("Connection", connection_id)

    @staticmethod
    def _check_conditions(conditions: dict[str, Any] | None) -> None:
        unknown = sorted(set(conditions or {}) - set(CONDITION_KEYS))
        if unknown:
            raise ValidationError(
                "Unknown rule condition keys",
                errors=[f"Unsupported condition: {key}" for key in unknown],
            )

    async def get(self, user_id: str, rule_id: str) -> EventFilterRule:
        rule = await self.repo.get_for_user(rule_id, user_id)
        if rule is None:
            raise NotFoundError("Filter rule", rule_id)
        return rule

    async def create(self, user_id: str, data: dict[str, Any]) -> EventFilterRule:
        """Create a rule; priority defaults to the user's highest plus 10.

        Raises:
            ConflictError: If the rule name is already used by this user.
        """
        if await self.repo.get_by_name(user_id, data["rule_name"]) is not None:
            raise ConflictError(f"Filter rule '{data['rule_name']}' already exists")
        await self._check_connection(user_id, data.get("connection_id"))
        self._check_conditions(data.get("conditions"))

        values = {k: v for k, v in data.items() if k in _UPDATABLE}
        if values.get("priority") is None:
            values["priority"] = await self.repo.next_priority(user_id)
        values.setdefault("conditions", {})
        values.setdefault("time_window_minutes", 60)
        rule = await self.repo.create({**values, "user_id": user_id, "match_count": 0})
        logger.info("Created filter rule %s (%s)", rule.rule_name, rule.id)
        return rule

    async def update(self, user_id: str, rule_id: str, data: dict[str, Any]) -> EventFilterRule:
        rule = await self.get(user_id, rule_id)
        new_name = data.get("rule_name")
        if new_name and new_name != rule.rule_name:
            if await self.repo.get_by_name(user_id, new_name) is not None:
                raise ConflictError(f"Filter rule '{new_name}' already exists")
        if "connection_id" in data:
            await self._check_connection(user_id, data["connection_id"])
        if "conditions" in data:
            self._check_conditions(data["conditions"])

        for key, value in data.items():
            if key in _UPDATABLE:
                setattr(rule, key, value)
        await self.session.flush()
        return rule

    async def list_rules(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        connection_id: str | None = None,
        enabled: bool | None = None,
    ) -> dict[str, Any]:
        items, total = await self.repo.paginate(
            limit=limit,
            offset=offset,
            user_id=user_id,
            connection_id=connection_id,
            enabled=enabled,
        )
        return page(items, total, limit, offset)

    async def delete(self, user_id: str, rule_id: str) -> None:
        rule = await self.get(user_id, rule_id)
        await self.repo.delete(rule)

    async def toggle(self, user_id: str, rule_id: str, enabled: bool) -> EventFilterRule:
        rule = await self.get(user_id, rule_id)
        rule.enabled = enabled
        await self.session.flush()
        return rule

    async def bulk_toggle(self, user_id: str, rule_ids: list[str], enabled: bool) -> int:
        return await self.repo.bulk_set_enabled(user_id, rule_ids, enabled)

    async def enabled_for_connection(self, user_id: str, connection_id: str) -> list[EventFilterRule]:
        await self._check_connection(user_id, connection_id)
        return await self.repo.enabled_for_connection(connection_id, user_id)

    async def most_active(self, user_id: str, limit: int = 10) -> list[EventFilterRule]:
        return await self.repo.most_active(user_id, limit)

    async def statistics(self, user_id: str) -> dict[str, Any]:
        by_type = await self.repo.statistics(user_id)
        return {
            "total_rules": await self.repo.count(user_id=user_id),
            "enabled_rules": await self.repo.count(user_id=user_id, enabled=True),
            "total_matches": sum(entry["matches"] for entry in by_type.values()),
            "by_rule_type": by_type,
        }


