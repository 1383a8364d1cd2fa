"""
Periodic reaper for the in-memory fallback maps.

Redis expires keys natively, so only the fallback map needs sweeping. The
reaper runs whatever backend is currently active: availability can flip at
any time and stale fallback entries must not pile up.
"""

import asyncio
import contextlib
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicReaper:
    """Calls ``purge`` every ``interval`` seconds on the running event loop."""

    def __init__(self, name: str, interval: float, purge: Callable[[], int]):
        """
        Args:
            name: Engine name used in logs and task names
            interval: Seconds between sweeps
            purge: Removes expired entries and returns how many were removed
        """
        self.name = name
        self.interval = interval
        self._purge = purge
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.ensure_future(self._loop())
        logger.info(f"Started {self.name} fallback reaper (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info(f"Stopped {self.name} fallback reaper")

    def run_once(self) -> int:
        """Run a single sweep. Errors are logged, never raised."""
        try:
            removed = self._purge()
        except Exception as e:
            logger.error(f"{self.name} reaper sweep failed: {e}")
            return 0

        if removed:
            logger.info(f"{self.name} reaper removed {removed} expired entries")
        return removed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.run_once()
