"""Home Assistant integration.

REST client per connection, WebSocket helpers, the persistent event stream
and the event processing pipeline.
"""

from src.ha.client import HAClient, HAClientConfig, get_ha_client_for, reset_ha_client
from src.ha.connection_test import ConnectionTestResult, run_connection_test
from src.ha.event_handler import EventHandler
from src.ha.event_processor import EventProcessor, get_event_processor
from src.ha.event_stream import HAEventStream, HomeAssistantEvent
from src.ha.stream_manager import StreamManager, get_stream_manager
from src.ha.websocket import ConnectionState, build_ws_url

__all__ = [
    "ConnectionState",
    "ConnectionTestResult",
    "EventHandler",
    "EventProcessor",
    "HAClient",
    "HAClientConfig",
    "HAEventStream",
    "HomeAssistantEvent",
    "StreamManager",
    "build_ws_url",
    "get_event_processor",
    "get_ha_client_for",
    "get_stream_manager",
    "reset_ha_client",
    "run_connection_test",
]
