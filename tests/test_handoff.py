"""Unit tests for background handoff reconciliation."""
import asyncio

import pytest

from agentstream.chat import BackgroundHandoff, HandoffRegistry, MessageList
from agentstream.config import ChatSettings
from agentstream.storage import ChangeType, Message, MessageRow, ResponseChunk, ResponseStatus, Role, RowChange


def assistant(content: str, message_id: str = "m-1", **fields) -> Message:
    return Message(id=message_id, conversation_id="c-1", role=Role.ASSISTANT, content=content, **fields)


@pytest.fixture
def messages():
    return MessageList([assistant("x" * 500)])


class TestHeartbeatPoll:
    """Tests for the no-regression poll."""

    @pytest.mark.asyncio
    async def test_shorter_persisted_content_is_ignored(self, messages, store):
        store.put_message(assistant("y" * 400))
        handoff = BackgroundHandoff("m-1", messages, store)

        applied = await handoff.poll()

        assert not applied
        assert messages.get("m-1").content == "x" * 500

    @pytest.mark.asyncio
    async def test_longer_persisted_content_replaces_display(self, messages, store):
        store.put_message(assistant("z" * 900, llm_provider="anthropic"))
        handoff = BackgroundHandoff("m-1", messages, store)

        applied = await handoff.poll()

        assert applied
        assert messages.get("m-1").content == "z" * 900
        assert messages.get("m-1").llm_provider == "anthropic"

    @pytest.mark.asyncio
    async def test_minimum_growth_is_respected(self, messages, store):
        store.put_message(assistant("z" * 520))
        handoff = BackgroundHandoff("m-1", messages, store, settings=ChatSettings(heartbeat_min_growth=50))

        assert not await handoff.poll()
        assert len(messages.get("m-1").content) == 500

    @pytest.mark.asyncio
    async def test_missing_row_changes_nothing(self, messages, store):
        handoff = BackgroundHandoff("m-1", messages, store)
        assert not await handoff.poll()

    @pytest.mark.asyncio
    async def test_terminal_status_from_poll_finishes(self, messages, store, fast_settings):
        store.put_message(assistant("done" * 200, status=ResponseStatus.COMPLETED))
        handoff = BackgroundHandoff("m-1", messages, store, settings=fast_settings)

        await handoff.start()
        await asyncio.wait_for(handoff.wait(), 1.0)

        assert handoff.final_status == ResponseStatus.COMPLETED
        assert not handoff.active
        assert messages.get("m-1").content == "done" * 200


class TestPushUpdates:
    """Tests for realtime row changes."""

    @pytest.mark.asyncio
    async def test_push_applies_chunked_content_and_terminates(self, messages, store, realtime, fast_settings):
        registry = HandoffRegistry()
        handoff = BackgroundHandoff(
            "m-1", messages, store, realtime=realtime, settings=fast_settings, on_finish=registry.discard
        )
        registry.add(handoff)
        await handoff.start()
        assert realtime.subscriber_count == 1

        realtime.publish(RowChange(
            event_type=ChangeType.UPDATE,
            new=MessageRow(
                message_id="m-1",
                conversation_id="c-1",
                llm_provider="openai",
                status=ResponseStatus.COMPLETED,
                response_chunks=[ResponseChunk(chunk="first "), ResponseChunk(chunk="second")],
            ),
        ))
        await asyncio.wait_for(handoff.wait(), 1.0)

        message = messages.get("m-1")
        assert message.content == "first second"
        assert message.llm_provider == "openai"
        assert realtime.subscriber_count == 0
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_push_for_other_message_is_ignored(self, messages, store, realtime, fast_settings):
        handoff = BackgroundHandoff("m-1", messages, store, realtime=realtime, settings=fast_settings)
        await handoff.start()

        realtime.publish(RowChange(event_type=ChangeType.UPDATE, new=MessageRow(id="m-2", content="other")))

        assert messages.get("m-1").content == "x" * 500
        await handoff.stop()


class TestCeiling:
    """Tests for hard teardown."""

    @pytest.mark.asyncio
    async def test_ceiling_tears_down_subscription(self, messages, store, realtime, debug_log):
        settings = ChatSettings(heartbeat_interval=0.01, handoff_ceiling=0.05)
        handoff = BackgroundHandoff(
            "m-1", messages, store, realtime=realtime, settings=settings, debug_callback=debug_log
        )

        await handoff.start()
        await asyncio.wait_for(handoff.wait(), 1.0)

        assert not handoff.active
        assert handoff.final_status is None
        assert realtime.subscriber_count == 0
        assert any("Ceiling" in message for _, _, message in debug_log.entries)

    @pytest.mark.asyncio
    async def test_registry_close_all_stops_live_handoffs(self, messages, store, realtime):
        registry = HandoffRegistry()
        handoff = BackgroundHandoff("m-1", messages, store, realtime=realtime)
        registry.add(handoff)
        await handoff.start()

        await registry.close_all()

        assert not handoff.active
        assert len(registry) == 0
        assert realtime.subscriber_count == 0
