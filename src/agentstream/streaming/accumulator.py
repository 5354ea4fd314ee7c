"""Throttled accumulation of streamed text.

Deltas land in an authoritative buffer immediately; observers only see the
buffer at a bounded rate. The buffer, not the schedule, is the source of
truth, so a cancelled or late commit never loses text.
"""

import asyncio
from collections.abc import Callable

from ..config import STREAM_COMMIT_INTERVAL

CommitCallback = Callable[[str], None]


class ThrottledAccumulator:
    """Buffers text deltas and commits them at most once per interval.

    Usage:
        acc = ThrottledAccumulator(lambda text: messages.set_content(mid, text))
        acc.append("Hel")
        acc.append("lo")
        acc.flush()  # observers now see "Hello"
    """

    def __init__(
        self,
        commit: CommitCallback,
        interval: float = STREAM_COMMIT_INTERVAL,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the accumulator.

        Args:
            commit: Called with the full buffered text on every commit
            interval: Seconds between scheduled commits
            loop: Event loop for scheduling (defaults to the running loop)
        """
        self._commit = commit
        self._interval = interval
        self._loop = loop
        self._parts: list[str] = []
        self._text = ""
        self._dirty = False
        self._handle: asyncio.TimerHandle | None = None
        self._commit_count = 0

    @property
    def text(self) -> str:
        """Authoritative text including deltas not yet committed."""
        if self._dirty:
            self._text = "".join(self._parts)
            self._parts = [self._text]
            self._dirty = False
        return self._text

    @property
    def pending(self) -> bool:
        """True while a scheduled commit has not fired yet."""
        return self._handle is not None

    @property
    def commit_count(self) -> int:
        return self._commit_count

    def append(self, delta: str) -> None:
        """Add a delta and schedule a commit if none is pending."""
        if not delta:
            return
        self._parts.append(delta)
        self._dirty = True
        if self._handle is None:
            loop = self._loop or asyncio.get_running_loop()
            self._handle = loop.call_later(self._interval, self._scheduled_commit)

    def flush(self) -> str:
        """Cancel any pending commit and commit the complete buffer now."""
        self.cancel()
        text = self.text
        self._do_commit(text)
        return text

    def reset(self, text: str) -> None:
        """Overwrite the buffer (background handoff or error) and commit it."""
        self.cancel()
        self._parts = [text]
        self._text = text
        self._dirty = False
        self._do_commit(text)

    def cancel(self) -> None:
        """Drop the pending commit without committing."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _scheduled_commit(self) -> None:
        self._handle = None
        self._do_commit(self.text)

    def _do_commit(self, text: str) -> None:
        self._commit_count += 1
        self._commit(text)
