"""Shared FastAPI dependencies.

Provides common dependency callables used across route modules.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import verify_api_key
from src.storage import get_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session scoped to a single request."""
    async with get_session() as session:
        yield session


# The authenticated identity owns connections, rules and suggestions
CurrentUser = Annotated[str, Depends(verify_api_key)]
DBSession = Annotated[AsyncSession, Depends(get_db)]
