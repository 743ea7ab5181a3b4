"""SQLAlchemy base model and common mixins.

Provides reusable model infrastructure for all database entities.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, MetaData, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

# Naming convention for constraints (helps with migrations)
NAMING_CONVENTION: dict[str, str] = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models.

    Features:
    - Automatic table naming from class name (snake_case)
    - Metadata with naming convention for consistent constraint names
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    @declared_attr.directive
    @classmethod
    def __tablename__(cls) -> str:
        """Generate table name from class name in snake_case."""
        name = cls.__name__
        result: list[str] = []
        for i, char in enumerate(name):
            if char.isupper() and i > 0:
                result.append("_")
            result.append(char.lower())
        return "".join(result)

    def to_dict(self) -> dict[str, Any]:
        """Convert model instance to a column-name keyed dictionary."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class UUIDMixin:
    """Mixin that adds a string UUID v4 primary key."""

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        doc="Unique identifier (UUID v4)",
    )


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Record creation timestamp",
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        doc="Last update timestamp",
    )


class ConnectionScopedMixin:
    """Mixin for rows owned by a Home Assistant connection.

    Deleting the connection cascades to every scoped row.
    """

    connection_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("ha_connection.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Owning Home Assistant connection",
    )


def utcnow() -> datetime:
    """Timezone-aware current time used for Python-side defaults."""
    return datetime.now(UTC)


__all__ = [
    "Base",
    "ConnectionScopedMixin",
    "NAMING_CONVENTION",
    "TimestampMixin",
    "UUIDMixin",
    "utcnow",
]
