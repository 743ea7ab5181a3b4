"""Per-connection Home Assistant client.

Combines the HTTP base with the automation mixin and keeps one client per
stored connection so HTTP pools are reused across requests.
"""

import threading

from src.ha.automations import AutomationMixin
from src.ha.base import BaseHAClient, HAClientConfig, HAClientError
from src.settings import get_settings

__all__ = [
    "HAClient",
    "HAClientConfig",
    "HAClientError",
    "get_ha_client_for",
    "reset_ha_client",
]


class HAClient(BaseHAClient, AutomationMixin):
    """Client for one Home Assistant instance.

    Usage:
        client = get_ha_client_for(connection.id, connection.url, token)
        version = await client.get_version()
        await client.turn_off_automation("tappha_morning_lights_1a2b3c4d")
    """

    pass


# Key: connection id
_clients: dict[str, HAClient] = {}
_client_lock = threading.Lock()


def get_ha_client_for(connection_id: str, url: str, token: str) -> HAClient:
    """Get or create the client of a stored connection.

    A cached client is replaced when the URL or token changed.

    Thread-safe: Uses double-checked locking per connection.
    """
    client = _clients.get(connection_id)
    if client is None or client.config.ha_url != url or client.config.ha_token != token:
        with _client_lock:
            client = _clients.get(connection_id)
            if client is None or client.config.ha_url != url or client.config.ha_token != token:
                client = HAClient(
                    HAClientConfig(
                        ha_url=url,
                        ha_token=token,
                        timeout=get_settings().ha_request_timeout,
                    )
                )
                _clients[connection_id] = client
    return client


def reset_ha_client(connection_id: str | None = None) -> None:
    """Forget cached client(s).

    If connection_id is None, resets ALL cached clients.
    """
    with _client_lock:
        if connection_id is not None:
            _clients.pop(connection_id, None)
        else:
            _clients.clear()
