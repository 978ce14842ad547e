"""Delayed jobs with cancel handles.

Reconnect timers, poll ticks and post-write refreshes are all scheduled
through a Scheduler instead of bare loop timers, so that a test can swap in
a manual clock and step time deterministically.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

_LOGGER = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


class ScheduledJob:
    """Handle for one delayed job.

    cancel() only prevents a job that has not started yet. A job that is
    already running is allowed to finish.
    """

    def __init__(self, when: float, job: Job) -> None:
        self.when = when
        self._job = job
        self._cancelled = False
        self._started = False
        self._timer: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        """True until the job starts or is cancelled."""
        return not (self._cancelled or self._started)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._started:
            return
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def attach_timer(self, timer: asyncio.TimerHandle) -> None:
        """Bind the loop timer that will start this job."""
        if not self.pending:
            timer.cancel()
            return
        self._timer = timer

    async def run(self) -> None:
        if not self.pending:
            return
        self._started = True
        self._timer = None
        await self._job()


class Scheduler(Protocol):
    """Source of delayed jobs and the clock they run against."""

    def time(self) -> float: ...

    def schedule(self, delay: float, job: Job) -> ScheduledJob: ...


class LoopScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def time(self) -> float:
        return asyncio.get_running_loop().time()

    def schedule(self, delay: float, job: Job) -> ScheduledJob:
        loop = asyncio.get_running_loop()
        handle = ScheduledJob(loop.time() + delay, job)
        handle.attach_timer(loop.call_later(max(0.0, delay), self._spawn, handle))
        return handle

    def _spawn(self, handle: ScheduledJob) -> None:
        if not handle.pending:
            return
        task = asyncio.get_running_loop().create_task(handle.run())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            _LOGGER.error("Scheduled job failed", exc_info=error)

