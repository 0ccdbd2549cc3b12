from .app import create_app
from .handlers import EndpointConfig, chat_endpoint
from .settings import Settings

__all__ = [
    "create_app",
    "EndpointConfig",
    "chat_endpoint",
    "Settings",
]
