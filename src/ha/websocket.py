"""Home Assistant WebSocket helpers.

Provides the auth handshake shared by the persistent event stream and
``probe_event_subscription``, the one-shot check used by the connection
test.

Protocol reference:
    https://developers.home-assistant.io/docs/api/websocket
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from typing import Any

from websockets.asyncio.client import connect as ws_connect

from src.exceptions import HAClientError

__all__ = [
    "ConnectionState",
    "_authenticate",
    "build_ws_url",
    "probe_event_subscription",
    "ws_connect",
]

logger = logging.getLogger(__name__)

# Default timeout for the one-shot connect-auth-subscribe cycle (seconds).
DEFAULT_TIMEOUT = 15.0


class ConnectionState(enum.Enum):
    """State of a WebSocket connection to Home Assistant."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTHENTICATED = "AUTHENTICATED"
    AUTH_FAILED = "AUTH_FAILED"
    ERROR = "ERROR"


def build_ws_url(url: str) -> str:
    """Derive the WebSocket endpoint from an HA base URL.

    ``http://ha.local:8123`` becomes ``ws://ha.local:8123/api/websocket``.
    """
    base = url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/api/websocket"


async def _authenticate(ws: Any, token: str) -> None:
    """Authenticate a WebSocket connection to Home Assistant.

    Performs the HA WebSocket auth handshake: waits for ``auth_required``,
    sends the token, and validates ``auth_ok``.

    Args:
        ws: An open ``websockets`` connection.
        token: Long-lived access token for HA.

    Raises:
        HAClientError: On unexpected messages or authentication failure.
            ``tool`` is ``"ws_auth_invalid"`` when HA rejected the token.
    """
    raw = await ws.recv()
    msg = json.loads(raw)
    if msg.get("type") != "auth_required":
        raise HAClientError(
            f"Expected auth_required, got {msg.get('type')}",
            tool="ws_auth",
        )

    await ws.send(json.dumps({"type": "auth", "access_token": token}))

    raw = await ws.recv()
    msg = json.loads(raw)
    if msg.get("type") == "auth_invalid":
        raise HAClientError(
            msg.get("message", "Authentication failed"),
            tool="ws_auth_invalid",
        )
    if msg.get("type") != "auth_ok":
        raise HAClientError(
            f"Expected auth_ok, got {msg.get('type')}",
            tool="ws_auth",
        )


async def _recv_result(ws: Any, message_id: int) -> dict[str, Any]:
    """Read messages until the ``result`` for ``message_id`` arrives."""
    while True:
        msg = json.loads(await ws.recv())
        if msg.get("type") == "result" and msg.get("id") == message_id:
            return msg


async def probe_event_subscription(
    ws_url: str,
    token: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> dict[str, Any]:
    """Check WebSocket auth and event subscription without keeping a stream.

    Subscribes to ``state_changed`` and immediately unsubscribes.

    Returns:
        ``{"websocket_access": bool, "event_subscription": bool, "error": str | None}``.
        Never raises.
    """
    result: dict[str, Any] = {
        "websocket_access": False,
        "event_subscription": False,
        "error": None,
    }
    try:
        async with asyncio.timeout(timeout):
            async with ws_connect(ws_url) as ws:
                await _authenticate(ws, token)
                result["websocket_access"] = True

                await ws.send(
                    json.dumps({"id": 1, "type": "subscribe_events", "event_type": "state_changed"})
                )
                msg = await _recv_result(ws, 1)
                if not msg.get("success"):
                    result["error"] = msg.get("error", {}).get("message", "Subscription failed")
                    return result
                result["event_subscription"] = True

                await ws.send(
                    json.dumps({"id": 2, "type": "unsubscribe_events", "subscription": 1})
                )
                await _recv_result(ws, 2)
    except TimeoutError:
        result["error"] = f"WebSocket timeout after {timeout}s"
    except HAClientError as exc:
        result["error"] = str(exc)
    except Exception as exc:
        logger.debug("WebSocket probe failed for %s: %s", ws_url, exc)
        result["error"] = f"WebSocket error: {exc}"
    return result
