"""
ScanOrchestrator: triggers a remote scan and tracks it to completion.

    IDLE -> TRIGGERING -> POLLING -> COMPLETED | TIMED_OUT | FAILED -> IDLE

While polling, every `refresh_every`-th attempt refreshes the signal cache so
partial results show up before the scan finishes. Whatever the exit path,
the cache is refreshed exactly once more before run_scan() returns.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

from ..core.errors import PollError, ScanInProgressError
from ..core.models import ScanJob, ScanState, utcnow

logger = logging.getLogger(__name__)

ACCEPTED = 202

ProgressCallback = Callable[[ScanJob], Union[None, Awaitable[None]]]


class ScanOrchestrator:

    def __init__(
        self,
        client,
        cache,
        max_attempts: int = 1800,
        poll_interval_ms: int = 2000,
        refresh_every: int = 2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._cache = cache
        self.max_attempts = max_attempts
        self.poll_interval_ms = poll_interval_ms
        self.refresh_every = refresh_every
        self._sleep = sleep
        self.job = ScanJob(max_attempts=max_attempts, poll_interval_ms=poll_interval_ms)
        self.last_job: Optional[ScanJob] = None

    @property
    def is_running(self) -> bool:
        return self.job.is_active

    def begin(self) -> ScanJob:
        """
        Claim the orchestrator for a new scan and return the TRIGGERING job.
        Raises ScanInProgressError if a scan is already running.
        """
        if self.is_running:
            raise ScanInProgressError("A scan is already running")

        job = ScanJob(
            state=ScanState.TRIGGERING,
            max_attempts=self.max_attempts,
            poll_interval_ms=self.poll_interval_ms,
            started_at=utcnow(),
        )
        self.job = job
        return job

    async def run_scan(self, on_progress: Optional[ProgressCallback] = None) -> ScanJob:
        """
        Trigger a scan and follow it to a terminal state.
        Returns the finished job (COMPLETED, TIMED_OUT or FAILED); self.job is back to IDLE by then.
        Raises ScanInProgressError if a scan is already running.
        """
        return await self.follow(self.begin(), on_progress)

    async def follow(self, job: ScanJob, on_progress: Optional[ProgressCallback] = None) -> ScanJob:
        """Drive a job returned by begin() to a terminal state."""
        try:
            await self._notify(on_progress, job)
            try:
                status = await self._client.trigger()
            except Exception as e:
                job.state = ScanState.FAILED
                job.error = str(e) or type(e).__name__
                logger.error("Scan trigger failed: %s", job.error)
            else:
                if status == ACCEPTED:
                    job.state = ScanState.POLLING
                    job.attempt_count = 0
                    logger.info("Scan accepted; polling every %dms (max %d attempts)",
                                job.poll_interval_ms, job.max_attempts)
                    await self._notify(on_progress, job)
                    await self._poll(job, on_progress)
                else:
                    # synchronous completion, nothing to poll
                    job.state = ScanState.COMPLETED
                    job.progress_percent = 100.0
                    logger.info("Scan trigger returned %d; treating as complete", status)
        finally:
            if job.is_active:
                logger.warning("Scan cancelled in state %s", job.state.value)
                job.state = ScanState.FAILED
                job.error = "cancelled"
            job.finished_at = utcnow()
            await self._cache.refresh()
            self.last_job = job
            self.job = ScanJob(max_attempts=self.max_attempts, poll_interval_ms=self.poll_interval_ms)

        await self._notify(on_progress, job)
        return job

    async def _poll(self, job: ScanJob, on_progress: Optional[ProgressCallback]) -> None:
        while job.attempt_count < job.max_attempts:
            job.attempt_count += 1
            await self._sleep(job.poll_interval_ms / 1000)

            try:
                status = await self._client.poll_status()
            except PollError as e:
                logger.debug("Poll attempt %d failed: %s", job.attempt_count, e)
                continue
            except Exception as e:
                logger.debug("Poll attempt %d failed unexpectedly: %r", job.attempt_count, e)
                continue

            if status.percentage is not None:
                job.progress_percent = status.percentage

            if job.attempt_count % self.refresh_every == 0:
                await self._cache.refresh()

            if status.is_complete:
                job.progress_percent = 100.0
                job.state = ScanState.COMPLETED
                logger.info("Scan completed after %d polls", job.attempt_count)
                return

            await self._notify(on_progress, job)

        job.state = ScanState.TIMED_OUT
        job.error = f"Scan did not complete within {job.max_attempts} polls"
        logger.warning("%s", job.error)

    async def _notify(self, on_progress: Optional[ProgressCallback], job: ScanJob) -> None:
        if on_progress is None:
            return
        try:
            result = on_progress(job.model_copy())
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Scan progress callback failed")
