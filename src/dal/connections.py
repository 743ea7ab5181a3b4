"""Home Assistant connection data access layer.

Provides CRUD for connections plus Fernet encryption/decryption of the
stored HA access tokens.
"""

import base64
import hashlib
from datetime import datetime

from cryptography.fernet import Fernet
from sqlalchemy import func, select

from src.dal.base import BaseRepository
from src.exceptions import ConfigurationError
from src.settings import Settings, get_settings
from src.storage.entities.connection import ConnectionStatus, HAConnection


def _derive_fernet_key(secret: str) -> bytes:
    """Derive a Fernet key from an arbitrary secret string.

    Uses SHA-256 to produce a 32-byte key, then base64-encodes it
    as required by Fernet (url-safe base64, 32 bytes).
    """
    digest = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(digest)


def get_token_secret(settings: Settings | None = None) -> str:
    """Secret the token encryption key is derived from.

    Production requires TOKEN_ENCRYPTION_SECRET; other environments fall
    back to a fixed development secret.
    """
    settings = settings or get_settings()
    configured = settings.token_encryption_secret.get_secret_value()
    if configured:
        return configured
    if settings.environment == "production":
        raise ConfigurationError(
            "TOKEN_ENCRYPTION_SECRET must be set in production. "
            "Generate one with: openssl rand -hex 32"
        )
    return "tappha-dev-token-secret"


def encrypt_token(token: str, secret: str) -> str:
    """Encrypt an HA access token with a key derived from ``secret``.

    Returns:
        The encrypted token as a url-safe base64 string.
    """
    return Fernet(_derive_fernet_key(secret)).encrypt(token.encode()).decode()


def decrypt_token(encrypted: str, secret: str) -> str:
    """Decrypt a token produced by :func:`encrypt_token`.

    Raises:
        cryptography.fernet.InvalidToken: If the secret is wrong or data is corrupt.
    """
    return Fernet(_derive_fernet_key(secret)).decrypt(encrypted.encode()).decode()


class ConnectionRepository(BaseRepository[HAConnection]):
    """Repository for HAConnection CRUD operations."""

    model = HAConnection
    order_by_field = "created_at"
    order_desc = True

    async def get_for_user(self, connection_id: str, user_id: str) -> HAConnection | None:
        """Get a connection only if it belongs to ``user_id``."""
        result = await self.session.execute(
            select(HAConnection).where(
                HAConnection.id == connection_id,
                HAConnection.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_user_and_url(self, user_id: str, url: str) -> HAConnection | None:
        """Get the user's connection for a given HA URL, if any."""
        result = await self.session.execute(
            select(HAConnection).where(
                HAConnection.user_id == user_id,
                HAConnection.url == url,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[list[HAConnection], int]:
        """Page through a user's connections, newest first."""
        return await self.paginate(limit=limit, offset=offset, user_id=user_id)

    async def list_by_status(self, status: ConnectionStatus) -> list[HAConnection]:
        """All connections in a given status (used to restart streams on boot)."""
        result = await self.session.execute(
            select(HAConnection).where(HAConnection.status == status)
        )
        return list(result.scalars().all())

    async def touch_last_seen(self, connection_id: str, when: datetime) -> None:
        """Update last_seen_at without loading the row."""
        conn = await self.get_by_id(connection_id)
        if conn is not None:
            conn.last_seen_at = when
            await self.session.flush()
