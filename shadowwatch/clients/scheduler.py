"""
ShadowWatch — Hourly Audit Scheduler

In-process stand-in for the hosted cron trigger ``M * * * *`` (UTC).
Fires the tick callable at minute ``M`` of every hour, bounds each tick
by a timeout, and reports failures the way a hosted scheduler would:
logged, counted, and the schedule carries on.

Usage:
    scheduler = AuditScheduler(orchestrator.run, minute=0, timeout_s=300)
    await scheduler.start()
    ...
    await scheduler.stop()

Design notes:
- The first tick waits for the next boundary; use ``run_tick()`` (or the
  worker's ``--once``) to audit immediately.
- Ticks never overlap inside one scheduler. Overlap across processes is
  tolerated by the store-backed circuit breaker.
- A tick that outlives ``timeout_s`` is cancelled and counted as failed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

import structlog

from shadowwatch.primitives.common import Clock, utc_now

logger = structlog.get_logger("shadowwatch.scheduler")

TickFn = Callable[[], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


def next_run_after(now: datetime, minute: int = 0) -> datetime:
    """Next instant strictly after *now* whose minute is *minute* (seconds zeroed)."""
    candidate = now.replace(minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(hours=1)
    return candidate


class AuditScheduler:
    def __init__(
        self,
        tick: TickFn,
        minute: int = 0,
        timeout_s: float = 300.0,
        clock: Clock = utc_now,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._tick = tick
        self._minute = minute
        self._timeout_s = timeout_s
        self._clock = clock
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self._run_count = 0
        self._error_count = 0
        self._last_error: str | None = None
        self._last_fire_at: datetime | None = None

    # ── Lifecycle ─────────────────────────────────────────────────

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop(), name="scheduler:audit")
        logger.info(
            "scheduler_started",
            cron=f"{self._minute} * * * *",
            timeout_s=self._timeout_s,
        )

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("scheduler_stopped", run_count=self._run_count)

    async def wait(self) -> None:
        """Block until the loop ends (only on stop/cancel)."""
        if self._task is not None:
            await self._task

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "running": self._task is not None and not self._task.done(),
            "cron": f"{self._minute} * * * *",
            "run_count": self._run_count,
            "error_count": self._error_count,
            "last_error": self._last_error,
        }

    # ── Ticks ─────────────────────────────────────────────────────

    async def run_tick(self) -> bool:
        """Run one bounded tick. Returns False if it raised or timed out."""
        self._run_count += 1
        try:
            await asyncio.wait_for(self._tick(), timeout=self._timeout_s)
        except asyncio.TimeoutError:
            self._error_count += 1
            self._last_error = f"tick exceeded {self._timeout_s}s"
            logger.error("scheduler_tick_timeout", timeout_s=self._timeout_s)
            return False
        except Exception as exc:
            self._error_count += 1
            self._last_error = str(exc) or type(exc).__name__
            logger.error(
                "scheduler_tick_failed",
                error=self._last_error,
                error_class=type(exc).__name__,
            )
            return False
        return True

    async def _loop(self) -> None:
        while True:
            now = self._clock()
            # Never fire the same slot twice if a sleep wakes early
            fire_at = next_run_after(max(now, self._last_fire_at or now), self._minute)
            delay = (fire_at - now).total_seconds()
            logger.debug("scheduler_waiting", fire_at=fire_at.isoformat(), delay_s=delay)
            await self._sleep(delay)
            self._last_fire_at = fire_at
            await self.run_tick()
