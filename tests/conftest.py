"""Pytest configuration and shared fixtures."""
import asyncio
import json
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pytest

from agentstream.backend import ChatBackend, ChatRequest, ChatStream
from agentstream.config import ChatSettings
from agentstream.notifications import RecordingNotifier
from agentstream.realtime import InMemoryRealtimeChannel
from agentstream.storage import Agent, InMemoryMessageStore


def sse(payload: dict | str) -> bytes:
    """Encode one SSE data line."""
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {body}\n\n".encode()


class FakeChatStream(ChatStream):
    """Yields scripted chunks and records how many were read."""

    def __init__(
        self,
        chunks: list[bytes],
        error: BaseException | None = None,
        hang: bool = False,
        gate: asyncio.Event | None = None,
    ):
        self._chunks = list(chunks)
        self._gate = gate
        self._error = error
        self._hang = hang
        self._cancelled = False
        self.reads = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        if self._gate is not None:
            await self._gate.wait()
        for chunk in self._chunks:
            if self._cancelled:
                return
            self.reads += 1
            yield chunk
            await asyncio.sleep(0)
        if self._error is not None:
            raise self._error
        if self._hang:
            await asyncio.Event().wait()

    async def cancel(self) -> None:
        self._cancelled = True


class FakeChatBackend(ChatBackend):
    """Serves one scripted stream per request, in order."""

    def __init__(self, streams: list[FakeChatStream] | None = None, open_error: BaseException | None = None):
        self.streams = list(streams or [])
        self.requests: list[ChatRequest] = []
        self.opened: list[FakeChatStream] = []
        self.open_error = open_error
        self.closed = False

    @asynccontextmanager
    async def stream(self, request: ChatRequest) -> AsyncIterator[ChatStream]:
        self.requests.append(request)
        if self.open_error is not None:
            raise self.open_error
        stream = self.streams.pop(0)
        self.opened.append(stream)
        try:
            yield stream
        finally:
            await stream.cancel()

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fast_settings():
    """Millisecond timings so tests never wait on real intervals."""
    return ChatSettings(
        commit_interval=0.01,
        request_timeout=2.0,
        stall_poll_interval=0.05,
        stall_threshold=0.1,
        heartbeat_interval=0.02,
        handoff_ceiling=1.0,
        max_silent_followups=3,
    )


@pytest.fixture
def demo_agent():
    return Agent(id="agent-demo", slug="demo-agent", name="Demo")


@pytest.fixture
def store():
    return InMemoryMessageStore()


@pytest.fixture
def realtime():
    return InMemoryRealtimeChannel()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def debug_log():
    """Collects (level, component, message) tuples."""
    entries: list[tuple[str, str, str]] = []

    def _callback(level: str, component: str, message: str) -> None:
        entries.append((level, component, message))

    _callback.entries = entries  # type: ignore[attr-defined]
    return _callback


@pytest.fixture(scope="session")
def postgres_config():
    """Return PostgreSQL configuration."""
    return {
        "host": os.getenv("POSTGRES_HOST", "localhost"),
        "port": int(os.getenv("POSTGRES_PORT", "5432")),
        "database": os.getenv("POSTGRES_DB", "postgres"),
        "user": os.getenv("POSTGRES_USER", "postgres"),
        "password": os.getenv("POSTGRES_PASSWORD", "postgres"),
    }
