"""Keepalive scheduler — repeating timer plus on-demand cycles.

Two states: idle, or a cycle in flight. ``_cycle`` holds the in-flight
task and is the only mutual-exclusion flag; it is checked and set
without yielding to the event loop, so two cycles can never overlap.

Resolution for triggers that arrive mid-cycle:
  - timer fire    → dropped, next fire re-armed from the running cycle's start
  - run_cycle()   → awaits the running cycle and returns its report
                    (``joined_in_flight=True``); with ``wait=False`` it raises
                    ``CycleInProgressError`` instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone

from .cycle import CycleRunner
from .errors import CycleInProgressError
from .models import CycleReport, iso_or_none

logger = logging.getLogger(__name__)

# 4 pings a day, well within the 7-day inactivity pause window
DEFAULT_INTERVAL_HOURS = 6.0


class KeepaliveScheduler:
    """Owns the timer and serializes every ping cycle.

    Lifecycle:
        scheduler = KeepaliveScheduler(CycleRunner(registry, Pinger()))
        await scheduler.start()      # idempotent
        report = await scheduler.run_cycle("cron")
        await scheduler.stop()
    """

    def __init__(self, runner: CycleRunner, interval_hours: float = DEFAULT_INTERVAL_HOURS) -> None:
        if interval_hours <= 0:
            raise ValueError("interval_hours must be positive")
        self.runner = runner
        self.interval_hours = interval_hours
        self._timer: asyncio.Task[None] | None = None
        self._cycle: asyncio.Task[CycleReport] | None = None
        self._cycle_started_mono: float = 0.0

        self.started_at: datetime | None = None
        self.last_cycle_started_at: datetime | None = None
        self.last_cycle_completed_at: datetime | None = None
        self.last_cycle_error: str | None = None

    @property
    def interval_seconds(self) -> float:
        return self.interval_hours * 3600

    @property
    def is_running(self) -> bool:
        """True only while a cycle is executing."""
        return self._cycle is not None and not self._cycle.done()

    @property
    def is_started(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # -- lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Arm the timer. Calling it again while started is a no-op."""
        if self.is_started:
            logger.info("Keepalive scheduler already running, skipping duplicate start")
            return
        self.started_at = datetime.now(timezone.utc)
        self._timer = asyncio.create_task(self._timer_loop(), name="keepalive-timer")
        logger.info("Keepalive scheduler started (interval: %gh)", self.interval_hours)

    async def stop(self) -> None:
        """Disarm the timer and wait for any in-flight cycle to finish."""
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None
            self.started_at = None
            logger.info("Keepalive scheduler stopped")

        cycle = self._cycle
        if cycle is not None and not cycle.done():
            logger.info("Waiting for in-flight ping cycle before shutdown")
            await asyncio.shield(cycle)

    # -- cycles ----------------------------------------------------------------

    async def run_cycle(self, trigger: str = "manual", wait: bool = True) -> CycleReport:
        """Run a cycle now, or join the one already running.

        Does not touch the timer's cadence.
        """
        if self.is_running:
            if not wait:
                raise CycleInProgressError(iso_or_none(self.last_cycle_started_at))
            logger.info("Ping cycle already in progress — %s trigger waiting for it", trigger)
            report = await asyncio.shield(self._cycle)
            return replace(report, joined_in_flight=True)

        return await asyncio.shield(self._spawn(trigger))

    def _spawn(self, trigger: str) -> asyncio.Task[CycleReport]:
        self._cycle_started_mono = time.monotonic()
        self._cycle = asyncio.create_task(self._execute(trigger), name=f"keepalive-cycle-{trigger}")
        return self._cycle

    async def _execute(self, trigger: str) -> CycleReport:
        started = datetime.now(timezone.utc)
        self.last_cycle_started_at = started
        report = CycleReport(trigger=trigger, started_at=started.isoformat())
        t0 = time.perf_counter()
        logger.info("Starting ping cycle (trigger: %s)", trigger)

        try:
            report.results = await self.runner.run()
        except Exception as e:
            logger.exception("Ping cycle failed")
            report.error = f"{type(e).__name__}: {e}"
        finally:
            completed = datetime.now(timezone.utc)
            report.completed_at = completed.isoformat()
            report.duration_ms = round((time.perf_counter() - t0) * 1000, 1)
            self.last_cycle_completed_at = completed
            self.last_cycle_error = report.error
            self._cycle = None

        failed = sum(1 for r in report.results if not r.success)
        logger.info(
            "Ping cycle complete: %d pinged, %d failed [%dms]",
            len(report.results), failed, report.duration_ms,
        )
        return report

    async def _timer_loop(self) -> None:
        delay = self.interval_seconds
        while True:
            await asyncio.sleep(delay)
            if self.is_running:
                logger.warning("Keepalive timer fired while a cycle is running — skipping")
            else:
                self._spawn("timer")

            delay = self._cycle_started_mono + self.interval_seconds - time.monotonic()
            if delay <= 0:
                delay = self.interval_seconds
