"""Watchdog for silent streams.

Advisory only: it reports silence but never cancels the stream itself. A
caller may pass ``on_stall`` that decides to abort.
"""

import asyncio
import contextlib
import time
from collections.abc import Callable

from pydantic import BaseModel

from ..config import STALL_POLL_INTERVAL, STALL_THRESHOLD
from ..diagnostics import DebugCallback, DebugLog


class StallReport(BaseModel):
    """Snapshot of a stream that has gone quiet."""

    silence_seconds: float
    total_chars: int
    chunk_count: int


class StallMonitor:
    """Periodically compares time since the last delta against a threshold."""

    def __init__(
        self,
        threshold: float = STALL_THRESHOLD,
        poll_interval: float = STALL_POLL_INTERVAL,
        on_stall: Callable[[StallReport], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        debug_callback: DebugCallback | None = None,
    ) -> None:
        self._threshold = threshold
        self._poll_interval = poll_interval
        self._on_stall = on_stall
        self._clock = clock
        self._log = DebugLog(debug_callback)
        self._last_delta = clock()
        self._total_chars = 0
        self._chunk_count = 0
        self._stall_count = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def stall_count(self) -> int:
        """Number of stall reports emitted so far."""
        return self._stall_count

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def record_delta(self, total_chars: int) -> None:
        """Mark that a delta arrived."""
        self._last_delta = self._clock()
        self._total_chars = total_chars
        self._chunk_count += 1

    def check(self) -> StallReport | None:
        """Run one comparison; emits and returns a report when stalled."""
        silence = self._clock() - self._last_delta
        if silence <= self._threshold:
            return None

        report = StallReport(
            silence_seconds=silence,
            total_chars=self._total_chars,
            chunk_count=self._chunk_count,
        )
        self._stall_count += 1
        self._log.warning(
            "Stall",
            f"No chunks for {silence:.1f}s "
            f"(content length {report.total_chars}, chunks received {report.chunk_count})",
        )
        if self._on_stall:
            self._on_stall(report)
        return report

    def start(self) -> None:
        """Start polling on the running loop."""
        if self._task is None:
            self._last_delta = self._clock()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop polling. Safe to call more than once."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            self.check()

    async def __aenter__(self) -> "StallMonitor":
        self.start()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.stop()
