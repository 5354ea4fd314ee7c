"""Incremental decoder for the agent-chat SSE body.

This module hides the framing details of the event stream:
- UTF-8 sequences split across network reads
- Lines split across network reads
- JSON payloads split across two data lines
- Comment, keep-alive and terminator lines
"""

import codecs
import json
from collections.abc import AsyncIterator

from pydantic import ValidationError

from ..config import SSE_COMMENT_PREFIX, SSE_DATA_PREFIX, SSE_NOOP_PAYLOADS
from ..diagnostics import DebugCallback, DebugLog
from .events import StreamEvent, parse_event

_COMPONENT = "SSE"


class SSEDecoder:
    """Turns raw stream chunks into typed events.

    A decoder instance is stateful and belongs to exactly one response body.

    Usage:
        decoder = SSEDecoder()
        for chunk in chunks:
            for event in decoder.feed(chunk):
                handle(event)
        for event in decoder.flush():
            handle(event)
    """

    def __init__(self, debug_callback: DebugCallback | None = None) -> None:
        self._log = DebugLog(debug_callback)
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._line_buffer = ""
        self._fragment: str | None = None
        self._skipped = 0

    @property
    def skipped_payloads(self) -> int:
        """Number of payloads dropped after failing to parse twice."""
        return self._skipped

    @property
    def has_fragment(self) -> bool:
        """True while a payload is waiting to be merged with the next line."""
        return self._fragment is not None

    def feed(self, chunk: bytes | str) -> list[StreamEvent]:
        """Decode one network chunk.

        Args:
            chunk: Raw bytes (or already decoded text) from the response body

        Returns:
            Events completed by this chunk, in arrival order
        """
        text = chunk if isinstance(chunk, str) else self._utf8.decode(chunk)
        self._line_buffer += text
        lines = self._line_buffer.split("\n")
        self._line_buffer = lines.pop()

        events: list[StreamEvent] = []
        for line in lines:
            event = self._process_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[StreamEvent]:
        """Process whatever is left when the body ends."""
        tail = self._utf8.decode(b"", final=True)
        remaining = self._line_buffer + tail
        self._line_buffer = ""

        events: list[StreamEvent] = []
        if remaining:
            event = self._process_line(remaining.rstrip("\r"))
            if event is not None:
                events.append(event)

        if self._fragment is not None:
            self._log.warning(_COMPONENT, f"Dropping unterminated payload: {self._fragment[:50]!r}")
            self._fragment = None
            self._skipped += 1
        return events

    def _process_line(self, line: str) -> StreamEvent | None:
        if not line.strip():
            return None

        if line.startswith(SSE_DATA_PREFIX):
            payload = line[len(SSE_DATA_PREFIX):].strip()
        elif self._fragment is not None and not line.startswith(SSE_COMMENT_PREFIX):
            # Continuation of a payload that was split by a newline
            payload = line.strip()
        else:
            return None

        if self._fragment is None and payload in SSE_NOOP_PAYLOADS:
            return None

        if self._fragment is not None:
            merged = self._fragment + payload
            self._fragment = None
            parsed, ok = self._try_parse(merged)
            if ok:
                return parsed
            self._skipped += 1
            self._log.warning(_COMPONENT, f"Skipping payload that failed to parse twice: {merged[:50]!r}")
            if not line.startswith(SSE_DATA_PREFIX) or payload in SSE_NOOP_PAYLOADS:
                return None

        parsed, ok = self._try_parse(payload)
        if ok:
            return parsed
        self._fragment = payload
        self._log.debug(_COMPONENT, f"Re-buffering partial payload ({len(payload)} chars)")
        return None

    def _try_parse(self, payload: str) -> tuple[StreamEvent | None, bool]:
        """Parse a payload. ``ok`` is False only when the JSON is incomplete."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            return None, False

        try:
            event = parse_event(data)
        except ValidationError as e:
            self._log.warning(_COMPONENT, f"Ignoring malformed {data.get('type')} event: {e.error_count()} error(s)")
            return None, True

        if event is None and isinstance(data, dict):
            self._log.debug(_COMPONENT, f"Ignoring unknown event type: {data.get('type')!r}")
        return event, True


async def decode_stream(
    chunks: AsyncIterator[bytes],
    debug_callback: DebugCallback | None = None,
) -> AsyncIterator[StreamEvent]:
    """Lazily decode an async byte stream into events.

    Each call uses a fresh decoder, so the generator can be restarted on a new
    body but not resumed after the underlying read fails.
    """
    decoder = SSEDecoder(debug_callback)
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event
