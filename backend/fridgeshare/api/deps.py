from fastapi.requests import HTTPConnection

from ..services.chat_relay import ConnectionRegistry


def get_chat_registry(connection: HTTPConnection) -> ConnectionRegistry:
    """The process-wide socket registry built in main.py."""
    return connection.app.state.chat_registry
