"""Database engine and session management.

Lazily builds one async SQLAlchemy engine (asyncpg) and session factory per
process.  Both singletons are guarded by a reentrant lock because
get_session_factory() calls get_engine() while holding it.
"""

import threading
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.settings import Settings, get_settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_init_lock = threading.RLock()


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Get or create the async database engine.

    Args:
        settings: Optional settings override. Uses get_settings() if not provided.

    Returns:
        Configured AsyncEngine instance.
    """
    global _engine

    if _engine is None:
        with _init_lock:
            if _engine is None:
                settings = settings or get_settings()
                _engine = create_async_engine(
                    str(settings.database_url),
                    pool_size=settings.database_pool_size,
                    max_overflow=settings.database_max_overflow,
                    pool_timeout=settings.database_pool_timeout,
                    pool_recycle=settings.database_pool_recycle,
                    pool_pre_ping=True,
                    echo=settings.debug,
                )

    return _engine


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory.

    Args:
        settings: Optional settings override. Uses get_settings() if not provided.

    Returns:
        Configured async_sessionmaker instance.
    """
    global _session_factory

    if _session_factory is None:
        with _init_lock:
            if _session_factory is None:
                engine = get_engine(settings)
                _session_factory = async_sessionmaker(
                    bind=engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autocommit=False,
                    autoflush=False,
                )

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session that is closed on exit.

    The caller decides when to commit:

        async with get_session() as session:
            repo = ConnectionRepository(session)
            conn = await repo.create(...)
            await session.commit()
    """
    factory = get_session_factory()
    session = factory()
    try:
        yield session
    finally:
        await session.close()


@asynccontextmanager
async def get_committing_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a session that commits when the block exits cleanly.

    Used by background writers (event flushes, scheduled cleanup) that
    have no request boundary to commit on.  On exception the session is
    closed without committing.
    """
    async with get_session() as session:
        yield session
        await session.commit()


@asynccontextmanager
async def get_connection() -> AsyncGenerator["AsyncConnection", None]:
    """Provide a raw async database connection for raw SQL."""
    engine = get_engine()
    async with engine.connect() as connection:
        yield connection


async def init_db() -> None:
    """Eagerly open the pool and verify connectivity with ``SELECT 1``."""
    engine = get_engine()
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose of the engine and forget both singletons."""
    global _engine, _session_factory

    with _init_lock:
        if _engine is not None:
            await _engine.dispose()
            _engine = None
            _session_factory = None


__all__ = [
    "close_db",
    "get_committing_session",
    "get_connection",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
]
