"""Tests for api/server.py: HTTP surface over the cache and scan orchestrator."""
from __future__ import annotations

import asyncio
import logging
import time

import pytest
from fastapi.testclient import TestClient

from signal_scanner.api.server import create_app
from signal_scanner.app import ScannerRuntime
from signal_scanner.core.config import Settings
from signal_scanner.core.errors import NetworkError, ScanInProgressError
from signal_scanner.core.models import ScanState
from signal_scanner.services.cache import ResilientCache
from signal_scanner.services.orchestrator import ScanOrchestrator

from tests.conftest import AAPL_ROW, HEADER, TSLA_ROW, FakeFetcher, FakeScanClient, make_csv, no_sleep


def _runtime(fetcher, scan_client=None, **orch_kwargs) -> ScannerRuntime:
    settings = Settings(refresh_interval_s=3600)
    cache = ResilientCache(fetcher, settings.sheet_url)
    orch = ScanOrchestrator(scan_client or FakeScanClient(trigger_status=200), cache, sleep=no_sleep, **orch_kwargs)
    return ScannerRuntime(settings, cache, orch)


def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    raise AssertionError("condition not met in time")


class TestSignalsEndpoints:
    def test_health(self):
        with TestClient(create_app(runtime=_runtime(FakeFetcher(HEADER)))) as client:
            assert client.get("/health").json() == {"status": "ok"}

    def test_startup_refresh_populates_signals(self):
        runtime = _runtime(FakeFetcher(make_csv(AAPL_ROW, TSLA_ROW)))
        with TestClient(create_app(runtime=runtime)) as client:
            _wait_for(lambda: not runtime.cache.state.is_first_load)
            body = client.get("/signals").json()

        assert body["count"] == 2
        assert body["error"] is None
        assert body["is_first_load"] is False
        aapl = body["signals"][0]
        assert aapl["ticker"] == "AAPL"
        assert aapl["category"] == "BUY"
        assert aapl["conviction"] == 80
        assert aapl["matrix"]["4H"] == "UP"

    def test_category_filter(self):
        runtime = _runtime(FakeFetcher(make_csv(AAPL_ROW, TSLA_ROW)))
        with TestClient(create_app(runtime=runtime)) as client:
            _wait_for(lambda: not runtime.cache.state.is_first_load)
            body = client.get("/signals", params={"category": "SELL"}).json()
            bad = client.get("/signals", params={"category": "MAYBE"})

        assert [s["ticker"] for s in body["signals"]] == ["TSLA"]
        assert bad.status_code == 422

    def test_summary(self):
        runtime = _runtime(FakeFetcher(make_csv(AAPL_ROW, TSLA_ROW)))
        with TestClient(create_app(runtime=runtime)) as client:
            _wait_for(lambda: not runtime.cache.state.is_first_load)
            body = client.get("/signals/summary").json()

        assert body["total"] == 2
        assert body["buy"] == 1
        assert body["strong_sell"] == 1
        assert body["by_category"]["SELL"] == 1

    def test_first_load_error_surfaces(self):
        runtime = _runtime(FakeFetcher(NetworkError("Failed to fetch sheet: 404", status=404)))
        with TestClient(create_app(runtime=runtime)) as client:
            body = client.post("/signals/refresh").json()

        assert body["error"] == "Failed to fetch sheet: 404"
        assert body["count"] == 0

    def test_manual_refresh_keeps_data_on_empty(self):
        runtime = _runtime(FakeFetcher(make_csv(AAPL_ROW), HEADER))
        with TestClient(create_app(runtime=runtime)) as client:
            _wait_for(lambda: not runtime.cache.state.is_first_load)
            body = client.post("/signals/refresh").json()

        assert body["count"] == 1
        assert body["warning"] is not None
        assert body["error"] is None


class TestScanEndpoints:
    def test_scan_runs_in_background(self):
        runtime = _runtime(FakeFetcher(make_csv(AAPL_ROW)), FakeScanClient(polls=[{"percentage": 50}, {"success": True}]))
        with TestClient(create_app(runtime=runtime)) as client:
            resp = client.post("/scan")
            assert resp.status_code == 202
            assert resp.json()["job"]["state"] == "TRIGGERING"
            _wait_for(lambda: runtime.orchestrator.last_job is not None)
            body = client.get("/scan").json()

        assert body["job"]["state"] == "IDLE"
        assert body["last_job"]["state"] == "COMPLETED"
        assert body["last_job"]["progress_percent"] == 100

    def test_second_scan_conflicts(self):
        runtime = _runtime(FakeFetcher(make_csv(AAPL_ROW)), FakeScanClient(polls=[]), max_attempts=10**6)

        async def slow_sleep(_s: float) -> None:
            await asyncio.sleep(0.01)

        runtime.orchestrator._sleep = slow_sleep
        with TestClient(create_app(runtime=runtime)) as client:
            assert client.post("/scan").status_code == 202
            second = client.post("/scan")

        assert second.status_code == 409


class _BrokenCache:
    async def refresh(self):
        raise RuntimeError("cache gone")


class TestScannerRuntime:
    def test_start_scan_claims_job_before_task_runs(self):
        runtime = _runtime(FakeFetcher(make_csv(AAPL_ROW)))

        async def go():
            task = runtime.start_scan()
            assert runtime.orchestrator.job.state == ScanState.TRIGGERING
            with pytest.raises(ScanInProgressError):
                runtime.start_scan()
            return await task

        assert asyncio.run(go()).state == ScanState.COMPLETED

    def test_crashed_scan_is_logged(self, caplog):
        settings = Settings(refresh_interval_s=3600)
        orch = ScanOrchestrator(FakeScanClient(trigger_status=200), _BrokenCache(), sleep=no_sleep)
        runtime = ScannerRuntime(settings, ResilientCache(FakeFetcher(HEADER), settings.sheet_url), orch)

        async def go():
            task = runtime.start_scan()
            with pytest.raises(RuntimeError):
                await task
            await asyncio.sleep(0)

        with caplog.at_level(logging.ERROR, logger="signal_scanner.app"):
            asyncio.run(go())
        assert any("Background scan crashed" in r.getMessage() for r in caplog.records)

    def test_stop_cancels_running_scan(self):
        runtime = _runtime(FakeFetcher(make_csv(AAPL_ROW)), FakeScanClient(), max_attempts=10**6)

        async def slow_sleep(_s: float) -> None:
            await asyncio.sleep(3600)

        runtime.orchestrator._sleep = slow_sleep

        async def go():
            runtime.start_scan()
            await asyncio.sleep(0.01)
            assert runtime.orchestrator.job.state == ScanState.POLLING
            await runtime.stop()

        asyncio.run(go())
        last = runtime.orchestrator.last_job
        assert last.state == ScanState.FAILED
        assert last.error == "cancelled"
