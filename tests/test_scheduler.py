"""Tests for services/scheduler.py: refresh loop start/stop lifecycle."""
from __future__ import annotations

import asyncio

from signal_scanner.services.scheduler import RefreshScheduler

from tests.conftest import CountingCache


class TestRefreshScheduler:
    def test_refreshes_immediately_on_start(self):
        cache = CountingCache()

        async def go():
            sched = RefreshScheduler(cache, interval_s=60)
            sched.start()
            await asyncio.sleep(0.01)
            assert sched.is_running
            await sched.stop()
            return sched

        sched = asyncio.run(go())
        assert cache.refresh_calls == 1
        assert sched.is_running is False

    def test_refreshes_every_interval(self):
        cache = CountingCache()

        async def go():
            sched = RefreshScheduler(cache, interval_s=0.02)
            sched.start()
            await asyncio.sleep(0.11)
            await sched.stop()

        asyncio.run(go())
        assert cache.refresh_calls >= 3

    def test_stop_interrupts_wait(self):
        cache = CountingCache()

        async def go():
            sched = RefreshScheduler(cache, interval_s=3600)
            sched.start()
            await asyncio.sleep(0)
            loop = asyncio.get_running_loop()
            t0 = loop.time()
            await sched.stop()
            return loop.time() - t0

        assert asyncio.run(go()) < 1.0

    def test_start_is_idempotent(self):
        cache = CountingCache()

        async def go():
            sched = RefreshScheduler(cache, interval_s=60)
            sched.start()
            first = sched._task
            sched.start()
            assert sched._task is first
            await asyncio.sleep(0.01)
            await sched.stop()

        asyncio.run(go())
        assert cache.refresh_calls == 1

    def test_restart_after_stop(self):
        cache = CountingCache()

        async def go():
            sched = RefreshScheduler(cache, interval_s=60)
            sched.start()
            await asyncio.sleep(0.01)
            await sched.stop()
            sched.start()
            await asyncio.sleep(0.01)
            await sched.stop()
            return sched.tick_count

        assert asyncio.run(go()) == 2
        assert cache.refresh_calls == 2

    def test_stop_without_start(self):
        asyncio.run(RefreshScheduler(CountingCache(), interval_s=1).stop())
