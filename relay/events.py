"""
Connection registry and message routing for the relay.

The registry holds at most one device connection and any number of client
connections.  Every inbound frame goes through ``dispatch`` (classify, then
``route``) and every close goes through ``disconnect``.  Registry reads and
mutations happen only under the registry lock, so one handler at a time
touches registry state.  The frames a message produces are worked out under
the lock and sent after it is released; a peer that is slow to accept a
frame never holds up another connection.

Sends are best-effort: a send to a closed connection is skipped and a failed
send is logged and forgotten.  Nothing is queued or retried.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from starlette.websockets import WebSocketState

from relay.protocol import (
    ACK,
    ClassifiedMessage,
    Command,
    Role,
    RoleClaim,
    Telemetry,
    Unrecognized,
    classify,
    tag_reading,
)

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """Handle to one WebSocket connection.  Compared by identity."""

    websocket: Any
    role: Role = Role.UNASSIGNED
    connected_at: datetime = field(default_factory=datetime.now)

    @property
    def peer(self) -> str:
        client = getattr(self.websocket, "client", None)
        if client is None:
            return "unknown"
        return f"{client.host}:{client.port}"

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, text: str) -> bool:
        """Send a text frame.  Returns False if the connection is closed or the send fails."""
        if not self.is_open:
            return False
        try:
            await self.websocket.send_text(text)
        except Exception as exc:
            logger.warning("Failed to send to %s: %s", self.peer, exc)
            return False
        return True


class ConnectionRegistry:
    """
    Current device and client connections.

    Constructed once at startup and kept for the lifetime of the process.
    Mutators are plain methods; callers serialise access through ``lock``.
    """

    def __init__(self, source: str = "esp32") -> None:
        self.source = source
        self.device: Connection | None = None
        self.clients: set[Connection] = set()
        self.lock = asyncio.Lock()

    @property
    def device_connected(self) -> bool:
        return self.device is not None

    @property
    def client_count(self) -> int:
        return len(self.clients)

    async def snapshot(self) -> tuple[bool, int]:
        """Return ``(device_connected, client_count)`` read under the lock."""
        async with self.lock:
            return self.device_connected, self.client_count

    def claim_device(self, conn: Connection) -> None:
        """Make *conn* the device, replacing any previous device without notice."""
        if self.device is not None and self.device is not conn:
            logger.warning(
                "Device slot taken over by %s (was %s)", conn.peer, self.device.peer
            )
        self.clients.discard(conn)
        self.device = conn
        conn.role = Role.DEVICE

    def claim_client(self, conn: Connection) -> None:
        """Add *conn* to the clients.  Claiming twice is a no-op."""
        if self.device is conn:
            self.device = None
        self.clients.add(conn)
        conn.role = Role.CLIENT

    def remove(self, conn: Connection) -> Role:
        """Drop *conn* from the registry and return the role it held there."""
        if conn is self.device:
            self.device = None
            return Role.DEVICE
        if conn in self.clients:
            self.clients.remove(conn)
            return Role.CLIENT
        return Role.UNASSIGNED


Outgoing = tuple[Connection, str]


def plan(
    conn: Connection, message: ClassifiedMessage, registry: ConnectionRegistry
) -> list[Outgoing]:
    """
    Apply one classified message to the registry and return the frames it
    calls for.  Caller holds the lock; nothing is sent here.
    """
    if isinstance(message, RoleClaim):
        if message.role is Role.DEVICE:
            registry.claim_device(conn)
            logger.info("Device connected: %s", conn.peer)
        else:
            registry.claim_client(conn)
            logger.info(
                "Client connected: %s (total: %d)", conn.peer, registry.client_count
            )
        return [(conn, ACK)]

    if isinstance(message, Command):
        device = registry.device
        if device is None or not device.is_open:
            logger.warning("Device not connected, dropping command %s", message.token)
            return []
        return [(device, message.token)]

    if isinstance(message, Telemetry):
        payload = json.dumps(
            tag_reading(message.reading, registry.source),
            separators=(",", ":"),
            ensure_ascii=False,
        )
        outgoing = []
        for client in registry.clients:
            if not client.is_open:
                logger.debug("Skipping closed client %s", client.peer)
                continue
            outgoing.append((client, payload))
        return outgoing

    if isinstance(message, Unrecognized):
        if message.reason == "not_json":
            logger.debug("Unrecognized message from %s: %r", conn.peer, message.raw)
        else:
            logger.debug(
                "JSON from %s lacks the expected structure: %r", conn.peer, message.raw
            )
    return []


async def deliver(outgoing: list[Outgoing]) -> list[bool]:
    """Send frames concurrently; a slow or broken peer does not hold up the rest."""
    return await asyncio.gather(*(target.send(text) for target, text in outgoing))


async def route(
    conn: Connection, message: ClassifiedMessage, registry: ConnectionRegistry
) -> None:
    """
    Update the registry under the lock, then send with the lock released so
    that other connections keep being served while the sends are in flight.
    """
    async with registry.lock:
        outgoing = plan(conn, message, registry)
    if not outgoing:
        return

    results = await deliver(outgoing)
    if isinstance(message, Command) and results[0]:
        logger.info("Command forwarded to device: %s", message.token)
    elif isinstance(message, Telemetry):
        logger.info("Telemetry relayed to %d client(s)", sum(results))


async def dispatch(conn: Connection, raw: str, registry: ConnectionRegistry) -> None:
    """Classify and route one inbound frame."""
    await route(conn, classify(raw), registry)


async def disconnect(conn: Connection, registry: ConnectionRegistry) -> None:
    """Remove a closed connection from the registry."""
    async with registry.lock:
        role = registry.remove(conn)
        remaining = registry.client_count
    if role is Role.DEVICE:
        logger.info("Device disconnected: %s", conn.peer)
    elif role is Role.CLIENT:
        logger.info("Client disconnected: %s (remaining: %d)", conn.peer, remaining)
    else:
        logger.info("Connection closed: %s", conn.peer)
