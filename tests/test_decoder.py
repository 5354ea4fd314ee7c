"""Unit tests for SSE decoding."""
import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from agentstream.streaming import (
    CompleteEvent,
    ContentEvent,
    ErrorEvent,
    MessageStartEvent,
    SSEDecoder,
    SwitchingToBackgroundEvent,
    ToolExecuteLocallyEvent,
    decode_stream,
    parse_event,
)


def line(payload: dict) -> bytes:
    return f"data: {json.dumps(payload)}\n".encode()


class TestParseEvent:
    """Tests for mapping payloads to typed events."""

    def test_message_start_uses_wire_alias(self):
        event = parse_event({"type": "message_start", "messageId": "m-1"})
        assert isinstance(event, MessageStartEvent)
        assert event.message_id == "m-1"

    def test_complete_and_done_map_to_same_event(self):
        complete = parse_event({"type": "complete", "llmProvider": "openai", "conversationId": "c-1"})
        done = parse_event({"type": "done"})

        assert isinstance(complete, CompleteEvent)
        assert complete.llm_provider == "openai"
        assert complete.conversation_id == "c-1"
        assert isinstance(done, CompleteEvent)
        assert done.llm_provider is None

    def test_error_defaults_message(self):
        event = parse_event({"type": "error"})
        assert isinstance(event, ErrorEvent)
        assert event.error == "Unknown error"

    def test_tool_execute_locally_carries_command(self):
        event = parse_event({
            "type": "tool_execute_locally",
            "data": {"tool": "browser_action", "action": "click", "params": {"x": 1, "y": 2}},
        })
        assert isinstance(event, ToolExecuteLocallyEvent)
        assert event.data.tool == "browser_action"
        assert event.data.resolved_action == "click"

    def test_unknown_type_returns_none(self):
        assert parse_event({"type": "progress", "value": 3}) is None

    def test_non_object_returns_none(self):
        assert parse_event(["content"]) is None
        assert parse_event("keep-alive") is None


class TestSSEDecoder:
    """Tests for incremental decoding."""

    def test_single_chunk_multiple_events(self):
        decoder = SSEDecoder()
        events = decoder.feed(
            line({"type": "message_start", "messageId": "m-1"})
            + b"\n"
            + line({"type": "content", "text": "Hi"})
        )

        assert [type(e) for e in events] == [MessageStartEvent, ContentEvent]
        assert events[1].text == "Hi"

    def test_line_split_across_chunks(self):
        decoder = SSEDecoder()
        raw = line({"type": "content", "text": "hello"})

        assert decoder.feed(raw[:10]) == []
        events = decoder.feed(raw[10:])

        assert len(events) == 1
        assert events[0].text == "hello"

    def test_multibyte_character_split_across_chunks(self):
        decoder = SSEDecoder()
        raw = line({"type": "content", "text": "café"}).replace(b"\\u00e9", "é".encode())
        cut = raw.index("é".encode()) + 1

        events = decoder.feed(raw[:cut]) + decoder.feed(raw[cut:])

        assert events[0].text == "café"

    def test_ignores_comments_blank_and_non_data_lines(self):
        decoder = SSEDecoder()
        events = decoder.feed(b": ping\n\nevent: message\nid: 4\n" + line({"type": "content", "text": "x"}))
        assert len(events) == 1

    def test_sentinels_are_noops(self):
        decoder = SSEDecoder()
        events = decoder.feed(b'data: [DONE]\ndata: keep-alive\ndata: "keep-alive"\n')
        assert events == []
        assert not decoder.has_fragment

    def test_payload_split_by_newline_is_rebuffered(self):
        decoder = SSEDecoder()
        events = decoder.feed(b'data: {"type": "content",\n')
        assert events == []
        assert decoder.has_fragment

        events = decoder.feed(b' "text": "joined"}\n')
        assert len(events) == 1
        assert events[0].text == "joined"
        assert not decoder.has_fragment

    def test_fragment_merges_with_next_data_line(self):
        decoder = SSEDecoder()
        decoder.feed(b'data: {"type": "content", "te\n')
        events = decoder.feed(b'data: xt": "merged"}\n')

        assert len(events) == 1
        assert events[0].text == "merged"

    def test_fragment_failing_twice_is_skipped_and_new_line_tried_alone(self, debug_log):
        decoder = SSEDecoder(debug_log)
        decoder.feed(b'data: {"type": "content", "text": "lost\n')
        events = decoder.feed(line({"type": "content", "text": "kept"}))

        assert [e.text for e in events] == ["kept"]
        assert decoder.skipped_payloads == 1
        assert any(level == "warning" for level, _, _ in debug_log.entries)

    def test_flush_processes_trailing_line_without_newline(self):
        decoder = SSEDecoder()
        raw = line({"type": "complete"}).rstrip(b"\n")

        assert decoder.feed(raw) == []
        events = decoder.flush()

        assert len(events) == 1
        assert isinstance(events[0], CompleteEvent)

    def test_flush_drops_unterminated_fragment(self):
        decoder = SSEDecoder()
        decoder.feed(b'data: {"type": "content"\n')

        assert decoder.flush() == []
        assert decoder.skipped_payloads == 1
        assert not decoder.has_fragment

    def test_unknown_and_malformed_events_are_ignored(self):
        decoder = SSEDecoder()
        events = decoder.feed(
            line({"type": "usage", "tokens": 3})
            + line({"type": "message_start"})  # missing messageId
            + line({"type": "switching_to_background", "message": "later"})
        )

        assert len(events) == 1
        assert isinstance(events[0], SwitchingToBackgroundEvent)

    @given(st.lists(st.text(min_size=1, max_size=20), min_size=1, max_size=8), st.integers(min_value=1, max_value=7))
    def test_any_chunking_yields_same_events(self, texts: list[str], size: int):
        """Property test: chunk boundaries never change the decoded events."""
        raw = b"".join(line({"type": "content", "text": t}) for t in texts)
        decoder = SSEDecoder()

        events = []
        for i in range(0, len(raw), size):
            events.extend(decoder.feed(raw[i:i + size]))
        events.extend(decoder.flush())

        assert [e.text for e in events] == texts


class TestDecodeStream:
    """Tests for the async generator wrapper."""

    @pytest.mark.asyncio
    async def test_decodes_async_chunks(self):
        async def chunks():
            yield b'data: {"type": "content", "text": "a"}\n'
            yield b'data: {"type": "content", "text": "b"}'

        events = [event async for event in decode_stream(chunks())]

        assert [e.text for e in events] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_propagates_transport_errors(self):
        async def chunks():
            yield line({"type": "content", "text": "a"})
            raise ConnectionResetError("dropped")

        received = []
        with pytest.raises(ConnectionResetError):
            async for event in decode_stream(chunks()):
                received.append(event)

        assert [e.text for e in received] == ["a"]
