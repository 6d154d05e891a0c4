from __future__ import annotations

import json
import logging
import queue
from typing import Any, Dict, Iterator

from flask import Response

from .broadcaster import Broadcaster, Client

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0
MAX_PENDING = 100

_CLOSE = object()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Access-Control-Allow-Origin": "*",
}


def format_event(message: Dict[str, Any]) -> str:
    return f"event: {message.get('type', 'message')}\ndata: {json.dumps(message, default=str)}\n\n"


class SSETransport:
    """Bounded queue drained by the client's response generator."""

    def __init__(self, maxsize: int = MAX_PENDING) -> None:
        self.queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)

    def send(self, message: Dict[str, Any]) -> None:
        # queue.Full propagates so a stalled reader gets dropped
        self.queue.put_nowait(message)

    def close(self) -> None:
        try:
            self.queue.put_nowait(_CLOSE)
        except queue.Full:
            logger.debug("SSE queue full on close")


def event_stream(broadcaster: Broadcaster, client: Client, keepalive: float = KEEPALIVE_SECONDS) -> Iterator[str]:
    transport: SSETransport = client.transport  # type: ignore[assignment]
    try:
        while True:
            try:
                message = transport.queue.get(timeout=keepalive)
            except queue.Empty:
                yield ": keep-alive\n\n"
                continue
            if message is _CLOSE:
                return
            yield format_event(message)
            broadcaster.touch(client.id)
    finally:
        broadcaster.unregister(client.id)


def open_stream(broadcaster: Broadcaster, keepalive: float = KEEPALIVE_SECONDS) -> Response:
    """Register a new SSE client and return its streaming response."""
    client = broadcaster.register(SSETransport())
    broadcaster.send(client.id, {
        "type": "connected",
        "clientId": client.id,
        "message": "Connected to WorldStats SSE server",
    })
    return Response(
        event_stream(broadcaster, client, keepalive),
        mimetype="text/event-stream",
        headers=SSE_HEADERS,
    )
