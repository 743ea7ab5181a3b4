"""One-shot Home Assistant connection test.

Checks REST API access (``GET /api/config``), WebSocket authentication and
event subscription, and reports latency.  Never raises: every failure is
reported in the result.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any

import httpx
import structlog

from src.ha.base import extract_version
from src.ha.websocket import build_ws_url, probe_event_subscription
from src.settings import get_settings

logger = structlog.get_logger(__name__)


@dataclass
class ConnectionTestResult:
    """Outcome of a connection test."""

    success: bool = False
    api_access: bool = False
    websocket_access: bool = False
    event_subscription: bool = False
    version: str | None = None
    latency_ms: float | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


async def run_connection_test(
    url: str,
    token: str,
    *,
    timeout: float | None = None,
    check_websocket: bool = True,
) -> ConnectionTestResult:
    """Probe an HA instance with ``token``.

    Args:
        url: HA base URL, e.g. ``http://homeassistant.local:8123``
        token: Long-lived access token
        timeout: Per-step timeout (defaults to ``settings.ha_test_timeout``)
        check_websocket: Also probe WebSocket auth and subscription
    """
    timeout = timeout or get_settings().ha_test_timeout
    result = ConnectionTestResult()
    base = url.rstrip("/")

    start = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(
                f"{base}/api/config",
                headers={"Authorization": f"Bearer {token}"},
            )
        result.latency_ms = round((time.perf_counter() - start) * 1000, 2)
        if response.status_code == 401:
            result.error = "Authentication failed: invalid access token"
            return result
        if response.status_code != 200:
            result.error = f"HTTP {response.status_code} from /api/config"
            return result
        result.api_access = True
        result.version = extract_version(response.json())
    except httpx.TimeoutException:
        result.error = f"Connection timed out after {timeout}s"
        return result
    except httpx.HTTPError as e:
        result.error = f"Connection failed: {type(e).__name__}: {e}"
        return result
    except ValueError as e:
        result.error = f"Invalid response from /api/config: {e}"
        return result

    if check_websocket:
        probe = await probe_event_subscription(build_ws_url(base), token, timeout=timeout)
        result.websocket_access = probe["websocket_access"]
        result.event_subscription = probe["event_subscription"]
        if probe["error"]:
            result.error = probe["error"]
        result.success = result.api_access and result.websocket_access
    else:
        result.success = result.api_access

    logger.info(
        "ha_connection_tested",
        url=base,
        success=result.success,
        latency_ms=result.latency_ms,
        version=result.version,
    )
    return result
