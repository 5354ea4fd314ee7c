from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from typing import Any

from .models import ChatRequest


class BackendError(RuntimeError):
    """The chat backend reported a failure (non-2xx or an ``error`` event)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamAborted(ConnectionError):
    """The stream ended abnormally on the client side (timeout or drop)."""


class ChatStream(ABC):
    """An open response body from the chat backend."""

    @abstractmethod
    def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Iterate raw body chunks as they arrive."""

    @abstractmethod
    async def cancel(self) -> None:
        """Stop reading and release the connection. Idempotent."""

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        """True once ``cancel`` has been called."""


class ChatBackend(ABC):
    """Abstract agent-chat backend.

    This module hides the design decision of how a chat turn reaches the
    backend. Implementations handle:
    - Endpoint location and authentication headers
    - Request serialization
    - Mapping non-2xx responses to BackendError

    Supports async context manager protocol for proper resource cleanup:
        async with backend:
            async with backend.stream(request) as stream:
                async for chunk in stream.aiter_bytes():
                    ...
    """

    @abstractmethod
    def stream(self, request: ChatRequest) -> AbstractAsyncContextManager[ChatStream]:
        """Open an SSE stream for one turn.

        Args:
            request: The turn to send

        Returns:
            Async context manager yielding the open ChatStream

        Raises:
            BackendError: If the backend rejects the request
            httpx.TransportError: On network failures
        """

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "ChatBackend":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
