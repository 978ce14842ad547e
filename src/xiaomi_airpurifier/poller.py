"""Poll loop - keeps the state cache in sync with the device.

Once started, the loop fetches every property of the model in a single
batched get_prop, right away and then every POLL_INTERVAL seconds. A failed
fetch is logged and the previous snapshot is left alone; reconnecting is the
connection manager's job, driven by the session's failure callback.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from .codec import DEFAULT_AQI_THRESHOLDS, decode_properties
from .exceptions import PurifierError
from .models import ModelSpec
from .scheduler import ScheduledJob, Scheduler
from .session import DeviceSession
from .state import StateCache, StateSnapshot

_LOGGER = logging.getLogger(__name__)

POLL_INTERVAL = 15.0
REFRESH_DELAY = 0.25

UpdateCallback = Callable[[StateSnapshot], None]


class PollLoop:
    """Periodic property fetch for one device.

    Args:
        spec: Model spec (which properties to fetch, level scale)
        cache: Cache to replace on every successful fetch
        scheduler: Source of ticks and timestamps
        session_provider: Returns the current session, or None
        thresholds: Air quality breakpoints for classification
        interval: Seconds between polls
        on_update: Called once per successful fetch with the new snapshot
        name: Device name, for log messages
    """

    def __init__(
        self,
        spec: ModelSpec,
        cache: StateCache,
        scheduler: Scheduler,
        session_provider: Callable[[], DeviceSession | None],
        *,
        thresholds: Sequence[float] = DEFAULT_AQI_THRESHOLDS,
        interval: float = POLL_INTERVAL,
        on_update: UpdateCallback | None = None,
        name: str = "device",
    ) -> None:
        self._spec = spec
        self._cache = cache
        self._scheduler = scheduler
        self._session_provider = session_provider
        self._thresholds = tuple(thresholds)
        self.interval = interval
        self._on_update = on_update
        self.name = name
        self._running = False
        self._tick: ScheduledJob | None = None
        self._pending_refresh: ScheduledJob | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Fetch immediately, then keep polling every interval."""
        if self._running:
            return
        self._running = True
        _LOGGER.debug("Starting poll loop for %s every %.1fs", self.name, self.interval)
        await self.refresh()
        self._schedule_tick()

    def stop(self) -> None:
        """Stop polling. An in-flight fetch is left to complete."""
        self._running = False
        for job in (self._tick, self._pending_refresh):
            if job is not None:
                job.cancel()
        self._tick = None
        self._pending_refresh = None

    async def refresh(self) -> bool:
        """Fetch all properties once.

        Returns:
            True if the cache was updated
        """
        session = self._session_provider()
        if session is None:
            _LOGGER.debug("Skipping poll of %s: no session", self.name)
            return False

        try:
            raw = await session.call("get_prop", list(self._spec.properties))
        except PurifierError as err:
            _LOGGER.warning("Polling %s failed, keeping last state: %s", self.name, err)
            return False

        if session is not self._session_provider():
            _LOGGER.debug("Discarding poll result of %s from a replaced session", self.name)
            return False

        try:
            values = decode_properties(self._spec, raw, self._thresholds)
        except ValueError as err:
            _LOGGER.warning("Unexpected poll reply from %s: %s", self.name, err)
            return False

        snapshot = self._cache.replace(values, self._scheduler.time())
        _LOGGER.debug("Polled %s: %s", self.name, values)
        if self._on_update is not None:
            self._on_update(snapshot)
        return True

    def refresh_soon(self, delay: float = REFRESH_DELAY) -> None:
        """Schedule one out-of-band refresh, unless one is already pending."""
        if self._pending_refresh is not None and self._pending_refresh.pending:
            return
        self._pending_refresh = self._scheduler.schedule(delay, self._run_refresh)

    async def _run_refresh(self) -> None:
        self._pending_refresh = None
        await self.refresh()

    def _schedule_tick(self) -> None:
        if not self._running:
            return
        if self._tick is not None and self._tick.pending:
            return
        self._tick = self._scheduler.schedule(self.interval, self._run_tick)

    async def _run_tick(self) -> None:
        self._tick = None
        if not self._running:
            return
        await self.refresh()
        self._schedule_tick()
