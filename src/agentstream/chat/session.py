"""Per-turn resource bundle.

Every timer, task and reader opened for one send is registered on the
session's exit stack, so a single ``dispose()`` releases all of them on
every exit path.
"""

import time
from contextlib import AsyncExitStack
from typing import Any

from ..backend.base import ChatStream
from ..diagnostics import DebugCallback, DebugLog, short_id
from ..streaming.accumulator import ThrottledAccumulator
from ..streaming.monitor import StallMonitor


class StreamSession:
    """State and resources of one in-flight turn.

    Usage:
        async with StreamSession(placeholder_id, conv_id, slug, acc, monitor) as session:
            session.attach_stream(stream)
            ...
        # monitor stopped, pending commit dropped, reader cancelled
    """

    def __init__(
        self,
        placeholder_id: str,
        conversation_id: str,
        agent_slug: str,
        accumulator: ThrottledAccumulator,
        monitor: StallMonitor,
        debug_callback: DebugCallback | None = None,
    ) -> None:
        self.placeholder_id = placeholder_id
        self.conversation_id = conversation_id
        self.agent_slug = agent_slug
        self.accumulator = accumulator
        self.monitor = monitor
        self.backend_message_id: str | None = None
        self.total_chars = 0
        self.events_received = 0
        self.started_at = time.monotonic()
        self._stream: ChatStream | None = None
        self._stack = AsyncExitStack()
        self._opened = False
        self._disposed = False
        self._log = DebugLog(debug_callback)

    @property
    def message_id(self) -> str:
        """Backend-assigned id once known, else the placeholder id."""
        return self.backend_message_id or self.placeholder_id

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    async def open(self) -> None:
        if self._opened:
            return
        self._opened = True
        await self._stack.__aenter__()
        self.monitor.start()
        self._stack.push_async_callback(self.monitor.stop)
        self._stack.callback(self.accumulator.cancel)

    def attach_stream(self, stream: ChatStream) -> None:
        """Own the response reader; it is cancelled on dispose."""
        self._stream = stream
        self._stack.push_async_callback(stream.cancel)

    async def cancel_reader(self) -> None:
        """Stop reading the response body now."""
        if self._stream is not None:
            await self._stream.cancel()

    def record_content(self, delta: str) -> None:
        self.events_received += 1
        self.total_chars += len(delta)
        self.accumulator.append(delta)
        self.monitor.record_delta(self.total_chars)

    async def dispose(self) -> None:
        """Release every resource of the turn. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        if self._opened:
            await self._stack.aclose()
        self._log.debug(
            "Session",
            f"Disposed turn {short_id(self.message_id)} after {self.elapsed:.1f}s ({self.total_chars} chars)",
        )

    async def __aenter__(self) -> "StreamSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.dispose()
