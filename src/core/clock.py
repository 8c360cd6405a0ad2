"""Clock and timer abstraction.

The scheduler and the acquisition loops never sleep or arm timers directly.
They go through a Clock so tests can move time forward deterministically
instead of sleeping. In production, one-shot timers are APScheduler date
jobs on the running event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

LOGGER = logging.getLogger(__name__)

TimerCallback = Callable[..., Awaitable[Any]]


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Clock(Protocol):
    """Time source plus timer arming used by the core."""

    def now(self) -> float:
        ...

    def call_later(self, delay_seconds: float, callback: TimerCallback, *args: Any) -> TimerHandle:
        ...

    async def sleep(self, seconds: float) -> None:
        ...

    def close(self) -> None:
        ...


class _JobHandle:
    def __init__(self, job: Job) -> None:
        self._job = job

    def cancel(self) -> None:
        # A job that already ran has been removed by APScheduler.
        try:
            self._job.remove()
        except JobLookupError:
            pass


class SchedulerClock:
    """Wall clock whose timers are AsyncIOScheduler date jobs.

    The scheduler is started lazily on the first timer so it binds to the
    loop that is actually running the monitor.
    """

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)

    def now(self) -> float:
        return time.time()

    def _ensure_started(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            LOGGER.info("Timer scheduler started")

    def call_later(self, delay_seconds: float, callback: TimerCallback, *args: Any) -> _JobHandle:
        self._ensure_started()
        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(0.0, delay_seconds))
        job = self._scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=run_date),
            args=list(args),
            # A late timer (e.g. after the host slept) still fires.
            misfire_grace_time=None,
        )
        return _JobHandle(job)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def close(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            LOGGER.info("Timer scheduler stopped")
