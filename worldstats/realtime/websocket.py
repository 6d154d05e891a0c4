from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Optional

from flask_sock import Sock

from ..errors import AppError
from ..utils import normalize_code
from .broadcaster import Broadcaster, Client

logger = logging.getLogger(__name__)

WS_PATH = "/ws/compare"


class WebSocketTransport:
    """Serialises outbound frames onto a flask-sock connection."""

    def __init__(self, ws: Any) -> None:
        self.ws = ws
        self._lock = threading.Lock()

    def send(self, message: Dict[str, Any]) -> None:
        with self._lock:
            self.ws.send(json.dumps(message, default=str))

    def close(self) -> None:
        self.ws.close(reason=1001, message="Server shutting down")


def _countries(message: Dict[str, Any]) -> Optional[list]:
    countries = message.get("countries")
    if isinstance(countries, list):
        return [c for c in countries if isinstance(c, str)]
    return None


def handle_message(broadcaster: Broadcaster, client: Client, raw: Any, comparison: Any) -> Optional[Dict[str, Any]]:
    """Handle one inbound frame and return the reply for the client, if any."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Failed to parse WebSocket message from %s", client.id)
        return {"type": "error", "message": "Invalid message format"}
    if not isinstance(message, dict):
        return {"type": "error", "message": "Invalid message format"}

    kind = message.get("type")
    if kind in ("subscribe", "unsubscribe"):
        countries = _countries(message)
        if countries is None:
            return None
        op = broadcaster.subscribe if kind == "subscribe" else broadcaster.unsubscribe
        current = op(client.id, countries)
        return {"type": f"{kind}d", "countries": current or []}

    if kind == "ping":
        return {"type": "pong"}

    if kind == "compare":
        c1, c2 = message.get("c1"), message.get("c2")
        if not c1 or not c2:
            return {"type": "error", "message": "Missing country codes for comparison"}
        try:
            data = comparison.compare(c1, c2)
        except AppError as e:
            return {"type": "error", "message": e.message}
        except Exception:  # noqa: BLE001
            logger.exception("WebSocket compare failed for %s/%s", normalize_code(c1), normalize_code(c2))
            return {"type": "error", "message": "Comparison failed"}
        return {"type": "comparison-result", "data": data}

    return {"type": "error", "message": f"Unknown message type: {kind}"}


def init_websocket(sock: Sock, broadcaster: Broadcaster, comparison: Any) -> None:
    """Register the comparison WebSocket endpoint on `sock`."""

    @sock.route(WS_PATH)
    def compare_socket(ws):
        # liveness comes from protocol ping/pong (SOCK_SERVER_OPTIONS ping_interval)
        client = broadcaster.register(WebSocketTransport(ws), app_heartbeat=False)
        try:
            broadcaster.send(client.id, {
                "type": "connected",
                "clientId": client.id,
                "message": "Connected to WorldStats realtime server",
            })
            while True:
                raw = ws.receive()
                reply = handle_message(broadcaster, client, raw, comparison)
                if reply is not None:
                    broadcaster.send(client.id, reply)
        finally:
            broadcaster.unregister(client.id)
