"""Periodic cycle scheduler (default every 6 hours, first run at start)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from trustcore.pipeline.cycle import CycleInProgressError, CycleRunner

logger = logging.getLogger(__name__)


class CycleScheduler:
    """Runs scheduled cycles in a background task.

    ``trigger()`` wakes the loop early; the interval restarts after every
    cycle, scheduled or not.
    """

    def __init__(self, runner: CycleRunner, *, interval_seconds: float, run_on_start: bool = True) -> None:
        self._runner = runner
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self._task: asyncio.Task | None = None
        self._wake = asyncio.Event()
        self.next_run_at: Optional[datetime] = None
        self.runs = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Trust cycle scheduler started (every {self.interval_seconds:.0f}s)")

    def trigger(self) -> None:
        self._wake.set()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Trust cycle scheduler stopped")

    async def _loop(self) -> None:
        if not self.run_on_start:
            await self._sleep()

        while True:
            try:
                await self._runner.run_cycle("scheduled")
            except CycleInProgressError:
                logger.info("Skipping scheduled cycle, another cycle is running")
            except Exception:
                logger.exception("Scheduled trust cycle failed")
            self.runs += 1
            await self._sleep()

    async def _sleep(self) -> None:
        self.next_run_at = datetime.now(timezone.utc) + timedelta(seconds=self.interval_seconds)
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._wake.wait(), timeout=self.interval_seconds)
        self._wake.clear()
