"""
Sweep Scheduler
Runs the missed-dose sweep on a fixed interval inside the event loop
"""

import asyncio
import logging
from typing import Optional

from config import settings
from exceptions import SweepAbortedError, SweepInProgressError
from services.sweep_service import SweepService, sweep_service


logger = logging.getLogger(__name__)


class SweepScheduler:
    """
    Background task that invokes `run_sweep_pass` every `interval_seconds`.

    Each pass runs in a worker thread so database I/O never blocks the
    event loop. Errors are logged; the next tick retries from scratch.
    """

    def __init__(self, sweeper: Optional[SweepService] = None, interval_seconds: Optional[float] = None):
        self.sweeper = sweeper or sweep_service
        self.interval_seconds = interval_seconds or settings.SWEEP_INTERVAL_SECONDS
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="missed-dose-sweep")
        logger.info(f"Sweep scheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Sweep scheduler stopped")

    async def run_once(self) -> int:
        try:
            return await asyncio.to_thread(self.sweeper.run_sweep_pass)
        except SweepInProgressError:
            logger.info("Previous sweep pass still running; skipping this tick")
        except SweepAbortedError as e:
            logger.error(f"Sweep pass aborted: {e}")
        except Exception:
            logger.exception("Unexpected error in sweep pass")
        return 0

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()
