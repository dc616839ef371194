"""
Shared FastAPI dependencies.
"""

from fastapi.requests import HTTPConnection

from relay.events import ConnectionRegistry


def get_registry(connection: HTTPConnection) -> ConnectionRegistry:
    """
    Return the process-wide connection registry.

    The registry is created by the application lifespan and stored on
    ``app.state``; works for both HTTP and WebSocket routes.
    """
    return connection.app.state.registry
