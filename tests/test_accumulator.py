"""Unit tests for the throttled accumulator."""
import asyncio

import pytest
from hypothesis import given
from hypothesis import strategies as st

from agentstream.streaming import ThrottledAccumulator


class FakeHandle:
    def __init__(self, callback):
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Records call_later requests; tests fire them explicitly."""

    def __init__(self):
        self.handles: list[FakeHandle] = []

    def call_later(self, delay, callback):
        handle = FakeHandle(callback)
        self.handles.append(handle)
        return handle

    def fire(self) -> bool:
        pending = [h for h in self.handles if not h.cancelled]
        self.handles = []
        for handle in pending:
            handle.callback()
        return bool(pending)


class TestThrottledAccumulator:
    """Tests for buffered commits."""

    @pytest.mark.asyncio
    async def test_final_flush_is_complete(self):
        """Deltas throttled at 100ms are all visible after flush."""
        commits: list[str] = []
        acc = ThrottledAccumulator(commits.append, interval=0.1)

        for delta in ("Hel", "lo wor", "ld"):
            acc.append(delta)

        assert commits == []
        assert acc.pending
        assert acc.flush() == "Hello world"
        assert commits[-1] == "Hello world"
        assert not acc.pending

    @pytest.mark.asyncio
    async def test_one_commit_per_interval(self):
        commits: list[str] = []
        acc = ThrottledAccumulator(commits.append, interval=0.02)

        acc.append("a")
        acc.append("b")
        acc.append("c")
        await asyncio.sleep(0.06)

        assert commits == ["abc"]
        assert acc.commit_count == 1

    @pytest.mark.asyncio
    async def test_reset_overwrites_and_commits_immediately(self):
        commits: list[str] = []
        acc = ThrottledAccumulator(commits.append, interval=0.05)
        acc.append("partial")

        acc.reset("Continuing in the background")
        await asyncio.sleep(0.08)

        assert commits == ["Continuing in the background"]
        assert acc.text == "Continuing in the background"

    @pytest.mark.asyncio
    async def test_cancel_drops_pending_commit(self):
        commits: list[str] = []
        acc = ThrottledAccumulator(commits.append, interval=0.01)
        acc.append("x")

        acc.cancel()
        await asyncio.sleep(0.03)

        assert commits == []
        assert acc.text == "x"

    def test_empty_delta_schedules_nothing(self):
        loop = FakeLoop()
        acc = ThrottledAccumulator(lambda _: None, loop=loop)

        acc.append("")

        assert loop.handles == []

    @given(st.lists(st.tuples(st.text(max_size=10), st.booleans()), max_size=30))
    def test_committed_text_only_grows(self, steps: list[tuple[str, bool]]):
        """Property test: every commit is a prefix of the next until flush."""
        loop = FakeLoop()
        commits: list[str] = []
        acc = ThrottledAccumulator(commits.append, loop=loop)

        for delta, fire in steps:
            acc.append(delta)
            if fire:
                loop.fire()
        final = acc.flush()

        for earlier, later in zip(commits, commits[1:]):
            assert later.startswith(earlier)
        assert final == "".join(delta for delta, _ in steps)
