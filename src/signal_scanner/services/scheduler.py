import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Calls cache.refresh() once at start and then every interval_s until stopped.

    The stop event doubles as the cancellation token: stop() sets it and the
    loop exits at its next wait, without cutting a refresh off mid-commit.
    """

    def __init__(self, cache, interval_s: float) -> None:
        self._cache = cache
        self.interval_s = interval_s
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the refresh loop on the running event loop (idempotent)."""
        if self.is_running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="signal-refresh-scheduler")
        logger.info("Refresh scheduler started (interval=%.1fs)", self.interval_s)

    async def stop(self) -> None:
        """Signal the loop to stop and wait for it to exit."""
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Refresh scheduler stopped")

    async def _run(self) -> None:
        while not self._stop.is_set():
            self.tick_count += 1
            await self._cache.refresh()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                continue
