"""Unit tests for stall detection."""
import asyncio

import pytest

from agentstream.streaming import StallMonitor, StallReport


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestStallMonitor:
    """Tests for the advisory watchdog."""

    def test_no_report_within_threshold(self):
        clock = FakeClock()
        monitor = StallMonitor(threshold=10.0, clock=clock)

        monitor.record_delta(5)
        clock.now += 9.5

        assert monitor.check() is None
        assert monitor.stall_count == 0

    def test_reports_silence_with_progress(self, debug_log):
        clock = FakeClock()
        reports: list[StallReport] = []
        monitor = StallMonitor(threshold=10.0, on_stall=reports.append, clock=clock, debug_callback=debug_log)

        monitor.record_delta(12)
        monitor.record_delta(40)
        clock.now += 11.0
        report = monitor.check()

        assert report is not None
        assert report.silence_seconds == pytest.approx(11.0)
        assert report.total_chars == 40
        assert report.chunk_count == 2
        assert reports == [report]
        assert debug_log.entries[-1][0] == "warning"

    def test_new_delta_resets_silence(self):
        clock = FakeClock()
        monitor = StallMonitor(threshold=10.0, clock=clock)

        clock.now += 20.0
        monitor.record_delta(1)

        assert monitor.check() is None

    @pytest.mark.asyncio
    async def test_background_polling_and_idempotent_stop(self):
        reports: list[StallReport] = []
        monitor = StallMonitor(threshold=0.02, poll_interval=0.01, on_stall=reports.append)

        async with monitor:
            assert monitor.running
            await asyncio.sleep(0.08)

        assert not monitor.running
        assert reports
        await monitor.stop()
