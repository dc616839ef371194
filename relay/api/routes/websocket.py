"""
WebSocket endpoint shared by the device and its clients.

WebSocket /
-----------
Every connection starts unassigned and identifies itself with its first
message:

    ESP32_CONNECTED     the sensor/actuator device
    FLUTTER_CONNECTED   a client app

Both are answered with ``connection_successful``.  Afterwards:

- clients send command tokens (``LIGHT_ON``, ``FAN_OFF``, ``AUTO_ON``, ...),
  which are forwarded verbatim to the device;
- the device sends JSON readings with ``temperature``, ``humidity`` and
  ``light``, which are sent to every client with ``"source": "esp32"`` added.

Anything else is ignored.  No error is ever sent back.

Usage
-----
    import websockets

    async with websockets.connect("ws://localhost:3000/") as ws:
        await ws.send("FLUTTER_CONNECTED")
        assert await ws.recv() == "connection_successful"
        await ws.send("LIGHT_ON")

        while True:
            reading = json.loads(await ws.recv())
            print(reading["temperature"], reading["humidity"])
"""

import logging

from fastapi import APIRouter, Depends, WebSocket

from relay.api.deps import get_registry
from relay.events import Connection, ConnectionRegistry, disconnect, dispatch

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/")
async def relay_endpoint(
    websocket: WebSocket,
    registry: ConnectionRegistry = Depends(get_registry),
) -> None:
    """Feed every frame from one connection into the registry until it closes."""
    await websocket.accept()

    conn = Connection(websocket=websocket)
    logger.info("New connection established: %s", conn.peer)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            raw = message.get("text")
            if raw is None:
                raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")

            await dispatch(conn, raw, registry)

    except Exception as exc:
        logger.error("WebSocket error on %s: %s", conn.peer, exc)
    finally:
        await disconnect(conn, registry)
