"""Event filtering rule repository."""

from sqlalchemy import func, or_, select, update

from src.dal.base import BaseRepository
from src.storage.entities.filter_rule import EventFilterRule

# Step between automatically assigned priorities
PRIORITY_STEP = 10


class FilterRuleRepository(BaseRepository[EventFilterRule]):
    """Repository for EventFilterRule CRUD and lookups."""

    model = EventFilterRule
    order_by_field = "priority"

    async def get_for_user(self, rule_id: str, user_id: str) -> EventFilterRule | None:
        result = await self.session.execute(
            select(EventFilterRule).where(
                EventFilterRule.id == rule_id,
                EventFilterRule.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_name(self, user_id: str, rule_name: str) -> EventFilterRule | None:
        result = await self.session.execute(
            select(EventFilterRule).where(
                EventFilterRule.user_id == user_id,
                EventFilterRule.rule_name == rule_name,
            )
        )
        return result.scalar_one_or_none()

    async def next_priority(self, user_id: str) -> int:
        """Highest existing priority for the user plus one step."""
        result = await self.session.execute(
            select(func.max(EventFilterRule.priority)).where(EventFilterRule.user_id == user_id)
        )
        current = result.scalar()
        return (current or 0) + PRIORITY_STEP

    async def enabled_for_connection(
        self, connection_id: str, user_id: str | None = None
    ) -> list[EventFilterRule]:
        """Enabled rules that apply to a connection, lowest priority value first.

        Rules without a connection apply to every connection of their owner.
        """
        query = select(EventFilterRule).where(
            EventFilterRule.enabled.is_(True),
            or_(
                EventFilterRule.connection_id == connection_id,
                EventFilterRule.connection_id.is_(None),
            ),
        )
        if user_id is not None:
            query = query.where(EventFilterRule.user_id == user_id)
        result = await self.session.execute(query.order_by(EventFilterRule.priority))
        return list(result.scalars().all())

    async def most_active(self, user_id: str, limit: int = 10) -> list[EventFilterRule]:
        result = await self.session.execute(
            select(EventFilterRule)
            .where(EventFilterRule.user_id == user_id)
            .order_by(EventFilterRule.match_count.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def bulk_set_enabled(self, user_id: str, rule_ids: list[str], enabled: bool) -> int:
        if not rule_ids:
            return 0
        result = await self.session.execute(
            update(EventFilterRule)
            .where(EventFilterRule.user_id == user_id, EventFilterRule.id.in_(rule_ids))
            .values(enabled=enabled)
        )
        return result.rowcount or 0

    async def statistics(self, user_id: str) -> dict[str, dict[str, int]]:
        """Rule count and total matches per rule type."""
        result = await self.session.execute(
            select(
                EventFilterRule.rule_type,
                func.count(EventFilterRule.id),
                func.coalesce(func.sum(EventFilterRule.match_count), 0),
            )
            .where(EventFilterRule.user_id == user_id)
            .group_by(EventFilterRule.rule_type)
        )
        return {
            rule_type.value: {"rules": int(count), "matches": int(matches)}
            for rule_type, count, matches in result.all()
        }
