"""
GET /        liveness check for the hosting platform.
GET /status  relay state, whether a device is attached and how many clients.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from relay.api.deps import get_registry
from relay.config import settings
from relay.events import ConnectionRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


class StatusResponse(BaseModel):
    status: str
    device_connected: bool
    clients: int


@router.get("/", response_class=PlainTextResponse)
def liveness() -> str:
    """Static confirmation that the server is up."""
    return settings.liveness_message


@router.get("/status", response_model=StatusResponse)
async def get_status(
    registry: ConnectionRegistry = Depends(get_registry),
) -> StatusResponse:
    """
    Returns the relay status.

    - **device_connected**: ``true`` while a connection holds the device role.
    - **clients**: number of connections registered as clients.
    """
    device_connected, clients = await registry.snapshot()
    return StatusResponse(
        status="ok",
        device_connected=device_connected,
        clients=clients,
    )
