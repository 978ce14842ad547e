"""Tests for scheduled job handles and the event loop scheduler."""

import asyncio

import pytest

from xiaomi_airpurifier.scheduler import LoopScheduler, ScheduledJob


async def _noop():
    pass


class TestScheduledJob:
    """Tests for job handle state."""

    @pytest.mark.asyncio
    async def test_run_once(self):
        calls = []

        async def job():
            calls.append(1)

        handle = ScheduledJob(0.0, job)
        assert handle.pending
        await handle.run()
        await handle.run()

        assert calls == [1]
        assert not handle.pending
        assert not handle.cancelled

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        calls = []

        async def job():
            calls.append(1)

        handle = ScheduledJob(0.0, job)
        handle.cancel()
        await handle.run()

        assert calls == []
        assert handle.cancelled

    @pytest.mark.asyncio
    async def test_cancel_stops_attached_timer(self):
        loop = asyncio.get_running_loop()
        handle = ScheduledJob(0.0, _noop)
        timer = loop.call_later(60.0, lambda: None)

        handle.attach_timer(timer)
        handle.cancel()

        assert timer.cancelled()

    @pytest.mark.asyncio
    async def test_timer_attached_after_cancel_is_stopped(self):
        """Test a late timer cannot revive a cancelled job."""
        loop = asyncio.get_running_loop()
        handle = ScheduledJob(0.0, _noop)
        handle.cancel()

        timer = loop.call_later(60.0, lambda: None)
        handle.attach_timer(timer)

        assert timer.cancelled()

    @pytest.mark.asyncio
    async def test_cancel_while_running_is_ignored(self):
        """Test a started job cannot be cancelled from inside itself."""
        handle = None

        async def job():
            handle.cancel()

        handle = ScheduledJob(0.0, job)
        await handle.run()

        assert not handle.cancelled


class TestLoopScheduler:
    """Tests for the asyncio-backed scheduler."""

    @pytest.mark.asyncio
    async def test_runs_after_delay(self):
        scheduler = LoopScheduler()
        done = asyncio.Event()

        async def job():
            done.set()

        handle = scheduler.schedule(0.01, job)
        assert handle.when >= scheduler.time()

        await asyncio.wait_for(done.wait(), timeout=1.0)
        assert not handle.pending

    @pytest.mark.asyncio
    async def test_cancel(self):
        scheduler = LoopScheduler()
        calls = []

        async def job():
            calls.append(1)

        scheduler.schedule(0.01, job).cancel()
        await asyncio.sleep(0.05)

        assert calls == []

    @pytest.mark.asyncio
    async def test_job_error_is_logged(self, caplog):
        scheduler = LoopScheduler()

        async def job():
            raise RuntimeError("boom")

        scheduler.schedule(0.0, job)
        await asyncio.sleep(0.05)

        assert "Scheduled job failed" in caplog.text
