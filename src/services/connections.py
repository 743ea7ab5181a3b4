"""Home Assistant connection management service."""

import logging
import time
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.dal.connections import (
    ConnectionRepository,
    decrypt_token,
    encrypt_token,
    get_token_secret,
)
from src.dal.events import EventRepository
from src.dal.metrics import AuditLogRepository, ConnectionMetricRepository
from src.exceptions import ConflictError, HAClientError, NotFoundError
from src.ha.client import HAClient, get_ha_client_for, reset_ha_client
from src.ha.connection_test import ConnectionTestResult, run_connection_test
from src.ha.stream_manager import StreamManager, get_stream_manager
from src.settings import get_settings
from src.storage.entities.connection import ConnectionStatus, HAConnection
from src.storage.entities.connection_metric import ConnectionAuditLog
from src.storage.entities.event import HAEvent

logger = logging.getLogger(__name__)

# Audit actions
ACTION_CONNECT = "CONNECT"
ACTION_TEST = "TEST"
ACTION_DISCONNECT = "DISCONNECT"


def page(items: list[Any], total: int, limit: int, offset: int) -> dict[str, Any]:
    """Standard paginated envelope."""
    return {
        "items": items,
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(items) < total,
    }


class ConnectionService:
    """Registers, tests and tears down HA connections for a user.

    Another user's connection is reported exactly like a missing one.
    """

    def __init__(self, session: AsyncSession, stream_manager: StreamManager | None = None):
        self.session = session
        self.repo = ConnectionRepository(session)
        self.events = EventRepository(session)
        self.metrics = ConnectionMetricRepository(session)
        self.audit = AuditLogRepository(session)
        self.streams = stream_manager or get_stream_manager()

    async def get_connection(self, user_id: str, connection_id: str) -> HAConnection:
        """Fetch a connection owned by ``user_id``.

        Raises:
            NotFoundError: If it does not exist or belongs to someone else.
        """
        conn = await self.repo.get_for_user(connection_id, user_id)
        if conn is None:
            raise NotFoundError("Connection", connection_id)
        return conn

    def token_for(self, conn: HAConnection) -> str:
        """Decrypt the stored access token of a connection."""
        return decrypt_token(conn.encrypted_token, get_token_secret())

    async def connect(
        self,
        user_id: str,
        name: str,
        url: str,
        token: str,
    ) -> tuple[HAConnection, ConnectionTestResult]:
        """Test and register a new connection.

        Raises:
            ConflictError: If the user already registered this URL.
            HAClientError: If the connection test fails (nothing is stored).
        """
        url = url.rstrip("/")
        if await self.repo.get_by_user_and_url(user_id, url) is not None:
            raise ConflictError(f"A connection to {url} already exists")

        result = await run_connection_test(url, token)
        if not result.success:
            raise HAClientError(
                f"Connection test failed: {result.error or 'unknown error'}",
                "connect",
                result.to_dict(),
            )

        now = datetime.now(UTC)
        conn = await self.repo.create(
            {
                "user_id": user_id,
                "name": name,
                "url": url,
                "encrypted_token": encrypt_token(token, get_token_secret()),
                "status": ConnectionStatus.CONNECTED,
                "home_assistant_version": result.version,
                "last_connected_at": now,
                "last_seen_at": now,
                "connection_health": result.to_dict(),
            }
        )
        if result.latency_ms is not None:
            await self.metrics.record(conn.id, "latency", result.latency_ms, now)
        await self.audit.log(
            conn.id,
            ACTION_CONNECT,
            details={"url": url, "version": result.version},
            duration_ms=int(result.latency_ms or 0),
        )
        logger.info("Registered HA connection %s (%s) for %s", conn.id, url, user_id)
        return conn, result

    async def start_stream(self, conn: HAConnection) -> bool:
        """Start the event stream if streaming is enabled. Call after commit."""
        if not get_settings().event_stream_enabled:
            return False
        await self.streams.start(conn.id, conn.url, self.token_for(conn), conn.user_id)
        return True

    async def list_connections(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> dict[str, Any]:
        items, total = await self.repo.list_for_user(user_id, limit=limit, offset=offset)
        return page(items, total, limit, offset)

    async def get_status(self, user_id: str, connection_id: str) -> dict[str, Any]:
        conn = await self.get_connection(user_id, connection_id)
        stream = self.streams.status(conn.id)
        return {
            "connection_id": conn.id,
            "name": conn.name,
            "url": conn.url,
            "status": conn.status.value,
            "home_assistant_version": conn.home_assistant_version,
            "last_seen_at": conn.last_seen_at,
            "last_connected_at": conn.last_connected_at,
            "connection_health": conn.connection_health,
            "websocket_state": stream["state"] if stream else None,
            "stream": stream,
        }

    async def test_connection(self, user_id: str, connection_id: str) -> ConnectionTestResult:
        """Re-test a stored connection and update its status and health."""
        conn = await self.get_connection(user_id, connection_id)
        started = time.perf_counter()
        try:
            token = self.token_for(conn)
        except Exception as e:
            result = ConnectionTestResult(error=f"Token decryption failed: {type(e).__name__}")
        else:
            result = await run_connection_test(conn.url, token)

        now = datetime.now(UTC)
        conn.connection_health = {**result.to_dict(), "tested_at": now.isoformat()}
        if result.success:
            conn.status = ConnectionStatus.CONNECTED
            conn.home_assistant_version = result.version
            conn.last_seen_at = now
        else:
            conn.status = ConnectionStatus.ERROR
        if result.latency_ms is not None:
            await self.metrics.record(conn.id, "latency", result.latency_ms, now)
        await self.audit.log(
            conn.id,
            ACTION_TEST,
            success=result.success,
            details=result.to_dict(),
            error_message=result.error,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        await self.session.flush()
        return result

    async def disconnect(self, user_id: str, connection_id: str) -> HAConnection:
        conn = await self.get_connection(user_id, connection_id)
        stopped = await self.streams.stop(conn.id)
        reset_ha_client(conn.id)
        conn.status = ConnectionStatus.DISCONNECTED
        await self.audit.log(conn.id, ACTION_DISCONNECT, details={"stream_stopped": stopped})
        await self.session.flush()
        logger.info("Disconnected HA connection %s", conn.id)
        return conn

    async def delete(self, user_id: str, connection_id: str) -> None:
        """Remove a connection; its events, metrics and audit rows cascade."""
        conn = await self.get_connection(user_id, connection_id)
        await self.streams.stop(conn.id)
        reset_ha_client(conn.id)
        await self.repo.delete(conn)
        logger.info("Deleted HA connection %s", connection_id)

    async def list_events(
        self,
        user_id: str,
        connection_id: str,
        limit: int = 50,
        offset: int = 0,
        event_type: str | None = None,
        entity_id: str | None = None,
    ) -> dict[str, Any]:
        conn = await self.get_connection(user_id, connection_id)
        items: list[HAEvent]
        items, total = await self.events.list_for_connection(
            conn.id, limit=limit, offset=offset, event_type=event_type, entity_id=entity_id
        )
        return page(items, total, limit, offset)

    async def audit_log(
        self, user_id: str, connection_id: str, limit: int = 50, offset: int = 0
    ) -> dict[str, Any]:
        conn = await self.get_connection(user_id, connection_id)
        items: list[ConnectionAuditLog]
        items, total = await self.audit.list_for_connection(conn.id, limit=limit, offset=offset)
        return page(items, total, limit, offset)

    async def resume_streams(self) -> int:
        """Restart streams for every CONNECTED connection (application startup)."""
        if not get_settings().event_stream_enabled:
            return 0
        started = 0
        for conn in await self.repo.list_by_status(ConnectionStatus.CONNECTED):
            try:
                await self.streams.start(conn.id, conn.url, self.token_for(conn), conn.user_id)
                started += 1
            except Exception:
                logger.exception("Could not resume event stream for %s", conn.id)
        return started


def ha_client_for(conn: HAConnection) -> HAClient:
    """Cached REST client of a stored connection."""
    return get_ha_client_for(conn.id, conn.url, decrypt_token(conn.encrypted_token, get_token_secret()))
