"""Tests for the poll loop."""

import pytest

from xiaomi_airpurifier.codec import AirQuality
from xiaomi_airpurifier.models import PurifierModel, StateKey, get_model_spec
from xiaomi_airpurifier.poller import PollLoop
from xiaomi_airpurifier.session import DeviceSession
from xiaomi_airpurifier.state import StateCache

from conftest import STATUS_2S, FakeTransport, connection_lost, error_reply, ok_reply

SPEC_2S = get_model_spec(PurifierModel.AIR_PURIFIER_2S)


class _Harness:
    """A poll loop wired to a swappable session."""

    def __init__(self, scheduler, transport, **kwargs):
        self.session = DeviceSession(transport, name="Bedroom")
        self.cache = StateCache()
        self.updates = []
        self.poller = PollLoop(
            SPEC_2S,
            self.cache,
            scheduler,
            lambda: self.session,
            on_update=self.updates.append,
            name="Bedroom",
            **kwargs,
        )


class TestRefresh:
    """Tests for a single fetch."""

    @pytest.mark.asyncio
    async def test_batched_fetch(self, scheduler, transport):
        """Test all properties are fetched in one get_prop."""
        h = _Harness(scheduler, transport)

        assert await h.poller.refresh()

        assert transport.sent == [("get_prop", list(SPEC_2S.properties))]
        assert h.cache.get(StateKey.AIR_QUALITY) == AirQuality.GOOD
        assert h.cache.get(StateKey.ROTATION_SPEED) == 50
        assert h.cache.snapshot.refreshed_at == 0.0
        assert h.updates == [h.cache.snapshot]

    @pytest.mark.asyncio
    async def test_failure_keeps_snapshot(self, scheduler):
        """Test a failed poll leaves the previous snapshot untouched."""
        transport = FakeTransport().queue(
            "get_prop", ok_reply(*STATUS_2S), error_reply(-5001, "busy")
        )
        h = _Harness(scheduler, transport)
        await h.poller.refresh()
        before = h.cache.snapshot

        assert not await h.poller.refresh()

        assert h.cache.snapshot is before
        assert len(h.updates) == 1

    @pytest.mark.asyncio
    async def test_transport_failure_keeps_snapshot(self, scheduler):
        transport = FakeTransport().queue("get_prop", ok_reply(*STATUS_2S), connection_lost())
        h = _Harness(scheduler, transport)
        await h.poller.refresh()
        before = h.cache.snapshot

        assert not await h.poller.refresh()

        assert h.cache.snapshot is before
        assert h.session.failed

    @pytest.mark.asyncio
    async def test_malformed_reply_keeps_snapshot(self, scheduler, caplog):
        transport = FakeTransport().on("get_prop", ok_reply("on", "auto"))
        h = _Harness(scheduler, transport)

        assert not await h.poller.refresh()

        assert h.cache.snapshot.empty
        assert h.updates == []
        assert "Unexpected poll reply" in caplog.text

    @pytest.mark.asyncio
    async def test_no_session(self, scheduler, transport):
        h = _Harness(scheduler, transport)
        h.session = None

        assert not await h.poller.refresh()
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_result_from_replaced_session_is_discarded(self, scheduler):
        """Test a reply that arrives after the session was replaced is dropped."""
        h = _Harness(scheduler, FakeTransport())

        def reply_then_replace(params):
            h.session = DeviceSession(FakeTransport(), name="Bedroom")
            return ok_reply(*STATUS_2S)

        h.session = DeviceSession(FakeTransport().on("get_prop", reply_then_replace))

        assert not await h.poller.refresh()
        assert h.cache.snapshot.empty
        assert h.updates == []


class TestLoop:
    """Tests for periodic polling."""

    @pytest.mark.asyncio
    async def test_start_polls_immediately_then_every_interval(self, scheduler, transport):
        h = _Harness(scheduler, transport, interval=15.0)

        await h.poller.start()
        assert len(transport.sent) == 1

        await scheduler.advance(14.0)
        assert len(transport.sent) == 1

        await scheduler.advance(1.0)
        assert len(transport.sent) == 2

        await scheduler.advance(30.0)
        assert len(transport.sent) == 4
        assert len(h.updates) == 4

    @pytest.mark.asyncio
    async def test_one_notification_per_poll(self, scheduler, transport):
        """Test subscribers hear once per poll even when nothing changed."""
        h = _Harness(scheduler, transport, interval=15.0)

        await h.poller.start()
        await scheduler.advance(15.0)

        assert len(h.updates) == 2
        assert dict(h.updates[0].values) == dict(h.updates[1].values)
        assert h.updates[1].refreshed_at == 15.0

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self, scheduler):
        """Test three failed polls then a good one updates the cache."""
        transport = FakeTransport().queue(
            "get_prop",
            error_reply(-5001),
            error_reply(-5001),
            error_reply(-5001),
            ok_reply(*STATUS_2S),
        )
        h = _Harness(scheduler, transport, interval=15.0)

        await h.poller.start()
        await scheduler.advance(30.0)
        assert h.cache.snapshot.empty

        await scheduler.advance(15.0)
        assert h.cache.get(StateKey.POWER) is True
        assert h.cache.snapshot.refreshed_at == 45.0
        assert len(h.updates) == 1

    @pytest.mark.asyncio
    async def test_stop(self, scheduler, transport):
        h = _Harness(scheduler, transport, interval=15.0)
        await h.poller.start()

        h.poller.stop()
        await scheduler.advance(60.0)

        assert not h.poller.running
        assert len(transport.sent) == 1
        assert scheduler.pending() == []

    @pytest.mark.asyncio
    async def test_start_twice(self, scheduler, transport):
        h = _Harness(scheduler, transport)
        await h.poller.start()
        await h.poller.start()
        assert len(transport.sent) == 1
        assert len(scheduler.pending()) == 1


class TestRefreshSoon:
    """Tests for out-of-band refreshes after writes."""

    @pytest.mark.asyncio
    async def test_runs_after_delay(self, scheduler, transport):
        h = _Harness(scheduler, transport)

        h.poller.refresh_soon(0.25)
        await scheduler.advance(0.2)
        assert transport.sent == []

        await scheduler.advance(0.1)
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_coalesces(self, scheduler, transport):
        """Test several writes in quick succession cause one refresh."""
        h = _Harness(scheduler, transport)

        h.poller.refresh_soon(0.25)
        h.poller.refresh_soon(0.25)
        h.poller.refresh_soon(0.25)
        await scheduler.advance(1.0)

        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_cancelled_by_stop(self, scheduler, transport):
        h = _Harness(scheduler, transport)

        h.poller.refresh_soon(0.25)
        h.poller.stop()
        await scheduler.advance(1.0)

        assert transport.sent == []
