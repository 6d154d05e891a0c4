from .broadcaster import Broadcaster, Client, Transport
from .sse import SSETransport, event_stream, format_event, open_stream
from .websocket import WS_PATH, WebSocketTransport, handle_message, init_websocket

__all__ = [
    "Broadcaster",
    "Client",
    "SSETransport",
    "Transport",
    "WS_PATH",
    "WebSocketTransport",
    "event_stream",
    "format_event",
    "handle_message",
    "init_websocket",
    "open_stream",
]
