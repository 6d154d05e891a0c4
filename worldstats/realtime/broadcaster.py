from __future__ import annotations

import datetime as dt
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

from ..utils import code_variants, iso_now, normalize_code, utcnow

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Outbound side of one client connection; `send` raises when the peer is gone."""

    def send(self, message: Dict[str, Any]) -> None: ...

    def close(self) -> None: ...


@dataclass
class Client:
    id: str
    transport: Transport
    subscriptions: Set[str] = field(default_factory=set)
    is_alive: bool = True
    # false when the transport runs its own ping/pong (WebSocket)
    app_heartbeat: bool = True
    connected_at: dt.datetime = field(default_factory=utcnow)

    def matches(self, codes: Set[str]) -> bool:
        return any(code_variants(c) & codes for c in self.subscriptions)


def _stamped(message: Dict[str, Any]) -> Dict[str, Any]:
    if message.get("timestamp"):
        return message
    return {**message, "timestamp": iso_now()}


class Broadcaster:
    """Registry of connected realtime clients, shared by the WebSocket and SSE transports.

    Delivery is best effort: a client whose transport fails to send is dropped
    and nothing is queued for it. Liveness is tracked with `heartbeat()`,
    which removes SSE clients that did not show any sign of life since the
    previous cycle.
    """

    def __init__(self) -> None:
        self._clients: Dict[str, Client] = {}
        self._lock = threading.Lock()

    # ---- Registry ----
    def register(
        self,
        transport: Transport,
        client_id: Optional[str] = None,
        app_heartbeat: bool = True,
    ) -> Client:
        client = Client(id=client_id or str(uuid.uuid4()), transport=transport, app_heartbeat=app_heartbeat)
        with self._lock:
            self._clients[client.id] = client
        logger.info("Realtime client connected: %s", client.id)
        return client

    def unregister(self, client_id: str) -> Optional[Client]:
        with self._lock:
            client = self._clients.pop(client_id, None)
        if client is not None:
            logger.info("Realtime client disconnected: %s", client_id)
        return client

    def get(self, client_id: str) -> Optional[Client]:
        with self._lock:
            return self._clients.get(client_id)

    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def touch(self, client_id: str) -> None:
        with self._lock:
            client = self._clients.get(client_id)
            if client is not None:
                client.is_alive = True

    # ---- Subscriptions ----
    def subscribe(self, client_id: str, codes: Iterable[str]) -> Optional[List[str]]:
        """Add codes to a client's subscriptions; returns the new set or None if unknown."""
        with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                return None
            client.subscriptions.update(normalize_code(c) for c in codes if c)
            return sorted(client.subscriptions)

    def unsubscribe(self, client_id: str, codes: Iterable[str]) -> Optional[List[str]]:
        with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                return None
            client.subscriptions.difference_update(normalize_code(c) for c in codes if c)
            return sorted(client.subscriptions)

    # ---- Delivery ----
    def send(self, client_id: str, message: Dict[str, Any]) -> bool:
        client = self.get(client_id)
        if client is None:
            return False
        return self._deliver([client], _stamped(message)) == 1

    def broadcast(self, message: Dict[str, Any]) -> int:
        with self._lock:
            targets = list(self._clients.values())
        sent = self._deliver(targets, _stamped(message))
        logger.debug("Broadcast %s sent to %d clients", message.get("type"), sent)
        return sent

    def broadcast_to_subscribed(self, codes: Iterable[str], message: Dict[str, Any]) -> int:
        wanted: Set[str] = set()
        for code in codes:
            wanted |= code_variants(code)
        with self._lock:
            targets = [c for c in self._clients.values() if c.matches(wanted)]
        return self._deliver(targets, _stamped(message))

    def _deliver(self, clients: List[Client], message: Dict[str, Any]) -> int:
        sent = 0
        for client in clients:
            try:
                client.transport.send(message)
                sent += 1
            except Exception as e:  # noqa: BLE001
                logger.warning("Dropping client %s after failed send: %s", client.id, e)
                self._drop(client)
        return sent

    def _drop(self, client: Client) -> None:
        self.unregister(client.id)
        try:
            client.transport.close()
        except Exception:  # noqa: BLE001
            logger.debug("Error closing transport for %s", client.id, exc_info=True)

    # ---- Liveness ----
    def heartbeat(self) -> int:
        """Drop clients silent since the last cycle, then ping the rest.

        Only clients registered with `app_heartbeat` take part; WebSocket
        connections are kept alive by protocol pings instead. Returns the
        number of clients dropped.
        """
        with self._lock:
            tracked = [c for c in self._clients.values() if c.app_heartbeat]
            stale = [c for c in tracked if not c.is_alive]
            live = [c for c in tracked if c.is_alive]
            for client in live:
                client.is_alive = False
        for client in stale:
            logger.info("Client %s missed heartbeat, disconnecting", client.id)
            self._drop(client)
        self._deliver(live, {"type": "heartbeat", "timestamp": iso_now()})
        return len(stale)

    def shutdown(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            try:
                client.transport.close()
            except Exception:  # noqa: BLE001
                logger.debug("Error closing transport for %s", client.id, exc_info=True)
        logger.info("Realtime broadcaster shut down (%d clients closed)", len(clients))
