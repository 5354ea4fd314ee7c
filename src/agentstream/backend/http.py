import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from ..config import STREAM_REQUEST_TIMEOUT
from .base import BackendError, ChatBackend, ChatStream
from .models import ChatRequest

DEFAULT_ENDPOINT = "/functions/v1/agent-chat"


def _error_message(body: bytes, status_code: int) -> str:
    """Extract ``{error}`` from a JSON error body."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        data = None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"Failed to get response (HTTP {status_code})"


class HttpChatStream(ChatStream):
    """ChatStream over an httpx streaming response."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        async for chunk in self._response.aiter_bytes():
            if self._cancelled:
                break
            yield chunk

    async def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        await self._response.aclose()


class HttpChatBackend(ChatBackend):
    """Agent-chat backend reached over HTTP.

    Hidden design decisions:
    - httpx client setup and timeouts
    - Bearer token and apikey headers
    - Error body format
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        access_token: str | None = None,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = STREAM_REQUEST_TIMEOUT,
        **client_kwargs: Any
    ):
        """Initialize the HTTP backend.

        Args:
            base_url: Functions host, e.g. ``https://project.supabase.co``
            api_key: Anonymous API key sent as ``apikey``
            access_token: User session token sent as bearer authorization
            endpoint: Path of the agent-chat function
            timeout: Read timeout for the streaming response
            **client_kwargs: Additional kwargs for httpx.AsyncClient
        """
        self._endpoint = endpoint
        self._api_key = api_key
        self._access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=15.0),
            **client_kwargs
        )

    def set_access_token(self, token: str | None) -> None:
        """Swap the user token (after a session refresh)."""
        self._access_token = token

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        if self._api_key:
            headers["apikey"] = self._api_key
        return headers

    @asynccontextmanager
    async def stream(self, request: ChatRequest) -> AsyncIterator[ChatStream]:
        async with self._client.stream(
            "POST",
            self._endpoint,
            json=request.to_payload(),
            headers=self._headers(),
        ) as response:
            if response.status_code >= 400:
                body = await response.aread()
                raise BackendError(
                    _error_message(body, response.status_code),
                    status_code=response.status_code,
                )
            chat_stream = HttpChatStream(response)
            try:
                yield chat_stream
            finally:
                await chat_stream.cancel()

    async def close(self) -> None:
        await self._client.aclose()
