"""
ESP32 Relay — FastAPI application entry point.

Run with:
    uvicorn relay.main:app --host 0.0.0.0 --port 3000
or:
    esp32-relay
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay.api.routes import status as status_router
from relay.api.routes import websocket as websocket_router
from relay.config import settings
from relay.events import ConnectionRegistry

logging.basicConfig(
    level=logging.DEBUG if settings.debug else settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the connection registry on startup; report what is left on shutdown."""
    registry = ConnectionRegistry(source=settings.telemetry_source)
    app.state.registry = registry
    logger.info("Relay started (telemetry source tag: %s)", registry.source)
    try:
        yield
    finally:
        logger.info(
            "Relay stopped (device connected: %s, clients: %d)",
            registry.device_connected,
            registry.client_count,
        )


app = FastAPI(
    title="ESP32 Relay",
    description="WebSocket relay between an ESP32 sensor/actuator device and its client apps.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(status_router.router, tags=["health"])
app.include_router(websocket_router.router, tags=["websocket"])


def main() -> None:
    import uvicorn

    logger.info("Starting relay on %s:%d", settings.host, settings.port)
    uvicorn.run("relay.main:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    main()
