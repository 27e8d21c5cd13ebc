"""Interval scheduler for audit cycles.

``AuditScheduler`` is a small two-state machine (IDLE / RUNNING) owned by
whoever embeds the auditor; several can coexist, e.g. one per test.  The
timer is an APScheduler ``AsyncIOScheduler`` job, so cycles run on the
caller's event loop.

A failing cycle is logged and recorded in ``last_error``; it never stops
the timer.  Cycles started through one scheduler (timer or
``trigger_now``) are serialised by a lock.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from barnacle.auditor import Auditor, CycleResult

logger = logging.getLogger(__name__)

AUDIT_JOB_ID = "barnacle_audit"
DEFAULT_INTERVAL_MINUTES = 30


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class AuditScheduler:
    """Runs ``auditor.run_cycle`` now and then every *interval* minutes."""

    def __init__(self, auditor: Auditor, interval_minutes: int = DEFAULT_INTERVAL_MINUTES):
        if interval_minutes <= 0:
            raise ValueError(f"interval_minutes must be positive, got {interval_minutes}")
        self.auditor = auditor
        self.interval_minutes = interval_minutes
        self._scheduler: AsyncIOScheduler | None = None
        self._lock = asyncio.Lock()
        self.last_result: CycleResult | None = None
        self.last_error: BaseException | None = None
        self.cycles_run = 0

    @property
    def state(self) -> SchedulerState:
        return SchedulerState.RUNNING if self._scheduler is not None else SchedulerState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    async def start(self, interval_minutes: int | None = None) -> None:
        """IDLE -> RUNNING.  Runs one cycle, then arms the interval timer."""
        if self.is_running:
            logger.warning("Auditor already running (every %dm)", self.interval_minutes)
            return
        if interval_minutes is not None:
            if interval_minutes <= 0:
                raise ValueError(f"interval_minutes must be positive, got {interval_minutes}")
            self.interval_minutes = interval_minutes

        logger.info("Auditor starting (every %dm)", self.interval_minutes)
        scheduler = AsyncIOScheduler()
        self._scheduler = scheduler
        await self.trigger_now()

        # stop() may have been called while the first cycle was running.
        if self._scheduler is not scheduler:
            return
        scheduler.add_job(
            self.trigger_now,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=AUDIT_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()

    def stop(self) -> None:
        """RUNNING -> IDLE.  A cycle already in flight runs to completion."""
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is None:
            return
        if scheduler.running:
            scheduler.shutdown(wait=False)
        logger.info("Auditor stopped")

    async def trigger_now(self) -> CycleResult | None:
        """Run one cycle immediately.  Errors are logged, not raised."""
        async with self._lock:
            try:
                result = await self.auditor.run_cycle()
            except Exception as exc:
                self.last_error = exc
                logger.exception("Audit error")
                return None
            self.cycles_run += 1
            self.last_error = None
            if result is not None:
                self.last_result = result
            return result

    @property
    def jobs(self):
        if self._scheduler is None:
            return []
        return self._scheduler.get_jobs()
