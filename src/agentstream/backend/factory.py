from typing import Any

from .base import ChatBackend
from .http import HttpChatBackend


def create_chat_backend(backend: str = "http", **config: Any) -> ChatBackend:
    """Create a chat backend instance.

    Args:
        backend: Backend type ("http" currently supported)
        **config: Backend-specific configuration
            For http:
                - base_url: str (required)
                - api_key: str | None
                - access_token: str | None
                - endpoint: str (default: '/functions/v1/agent-chat')

    Returns:
        Initialized chat backend

    Raises:
        ValueError: If backend type is not supported
        TypeError: If required configuration is missing
    """
    if backend == "http":
        if "base_url" not in config:
            raise TypeError("HTTP chat backend requires 'base_url' in config")
        return HttpChatBackend(**config)

    raise ValueError(
        f"Unsupported chat backend: {backend}. "
        f"Supported backends: http"
    )
