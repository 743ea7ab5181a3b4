"""Base repository with common CRUD operations."""

from typing import Any, Generic, TypeVar
from uuid import uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Base repository with common CRUD operations.

    Subclasses must set:
    - model: The SQLAlchemy model class
    - order_by_field: Field used for ordering in list_all()
    - order_desc: Whether list_all() orders newest/highest first
    """

    model: type[T]  # Set by subclasses
    order_by_field: str = "created_at"
    order_desc: bool = False

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    def _apply_filters(self, query: Select, filters: dict[str, Any]) -> Select:
        for key, value in filters.items():
            if value is not None and hasattr(self.model, key):
                query = query.where(getattr(self.model, key) == value)
        return query

    def _ordered(self, query: Select) -> Select:
        order_by_attr = getattr(self.model, self.order_by_field, None)
        if order_by_attr is None:
            return query
        return query.order_by(order_by_attr.desc() if self.order_desc else order_by_attr)

    async def get_by_id(self, id: str) -> T | None:
        """Get entity by internal ID.

        Args:
            id: Internal UUID

        Returns:
            Entity or None
        """
        result = await self.session.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def list_all(self, limit: int = 100, offset: int = 0, **filters: Any) -> list[T]:
        """List entities with optional equality filtering.

        Args:
            limit: Max results
            offset: Skip results
            **filters: Column=value filters (None values are ignored)

        Returns:
            List of entities
        """
        query = self._ordered(self._apply_filters(select(self.model), filters))
        query = query.limit(limit).offset(offset)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self, **filters: Any) -> int:
        """Count entities, optionally with filters."""
        query = self._apply_filters(select(func.count(self.model.id)), filters)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def paginate(
        self, limit: int = 50, offset: int = 0, **filters: Any
    ) -> tuple[list[T], int]:
        """Return one page of entities plus the total matching count."""
        items = await self.list_all(limit=limit, offset=offset, **filters)
        total = await self.count(**filters)
        return items, total

    async def create(self, data: dict[str, Any]) -> T:
        """Create a new entity and flush it (the caller commits).

        Args:
            data: Entity data

        Returns:
            Created entity
        """
        entity = self.model(**{"id": str(uuid4()), **data})
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def add(self, entity: T) -> T:
        """Add an already-built entity and flush it."""
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def delete(self, entity: T) -> None:
        """Delete an entity and flush."""
        await self.session.delete(entity)
        await self.session.flush()
