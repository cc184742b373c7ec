"""
app.py

Wires the scanner runtime (sheet client, cache, scheduler, scan orchestrator)
and exposes it on the command line.

Usage:
    signal-scanner serve                     # API server with background refresh
    signal-scanner serve --port 9000
    signal-scanner snapshot                  # one refresh, print classified signals
    signal-scanner scan                      # trigger a scan and follow it to the end
"""

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiohttp

from .clients.scan_client import ScanClient
from .clients.sheets_client import SheetsClient
from .core.classifier import classify_all
from .core.config import Settings, configure_logging, load_settings
from .core.errors import ScanInProgressError
from .core.models import ScanJob, ScanState
from .services.cache import ResilientCache
from .services.orchestrator import ScanOrchestrator
from .services.scheduler import RefreshScheduler

logger = logging.getLogger(__name__)


class ScannerRuntime:
    """Owns the cache, its refresh scheduler and the scan orchestrator, plus the scan task."""

    def __init__(
        self,
        settings: Settings,
        cache: ResilientCache,
        orchestrator: ScanOrchestrator,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.orchestrator = orchestrator
        self.scheduler = RefreshScheduler(cache, settings.refresh_interval_s)
        self._session = session
        self._scan_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        if self._scan_task is not None and not self._scan_task.done():
            self._scan_task.cancel()
            try:
                await self._scan_task
            except asyncio.CancelledError:
                pass
        if self._session is not None:
            await self._session.close()

    def start_scan(self) -> asyncio.Task:
        """Run a scan in the background. Raises ScanInProgressError if one is running."""
        if self._scan_task is not None and not self._scan_task.done():
            raise ScanInProgressError("A scan is already running")
        job = self.orchestrator.begin()
        self._scan_task = asyncio.create_task(self.orchestrator.follow(job), name="signal-scan")
        self._scan_task.add_done_callback(_log_scan_outcome)
        return self._scan_task


def _log_scan_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.info("Background scan cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background scan crashed", exc_info=exc)
        return
    job = task.result()
    logger.info("Background scan finished: %s", job.state.value)


def build_runtime(settings: Settings, session: Optional[aiohttp.ClientSession] = None) -> ScannerRuntime:
    sheets = SheetsClient(timeout=settings.request_timeout_s, session=session)
    cache = ResilientCache(sheets, settings.sheet_url)
    scans = ScanClient(
        settings.scan_trigger_url,
        settings.scan_status_url,
        timeout=settings.request_timeout_s,
        session=session,
    )
    orchestrator = ScanOrchestrator(
        scans,
        cache,
        max_attempts=settings.scan_max_attempts,
        poll_interval_ms=settings.scan_poll_interval_ms,
        refresh_every=settings.scan_refresh_every,
    )
    return ScannerRuntime(settings, cache, orchestrator, session=session)


# ----------------------------
# CLI commands
# ----------------------------
def _print_signals(runtime: ScannerRuntime) -> None:
    state = runtime.cache.state
    if state.error:
        print(f"ERROR: {state.error}")
    if state.warning:
        print(f"WARNING: {state.warning}")
    signals = classify_all(state.committed_snapshot.records)
    for s in signals:
        trend = " ".join(f"{k}:{v.value}" for k, v in s.matrix.items())
        print(f"{s.ticker:<6} {s.price:>9.2f}  {s.category.value:<10} {s.conviction:>3}%  {s.adx_strength.value:<11} {trend}")
    print(f"{len(signals)} signals (updated {state.last_updated})")


async def run_snapshot(settings: Settings) -> int:
    runtime = build_runtime(settings)
    await runtime.cache.refresh()
    _print_signals(runtime)
    return 1 if runtime.cache.state.error else 0


async def run_scan(settings: Settings) -> int:
    runtime = build_runtime(settings)

    def show(job: ScanJob) -> None:
        print(f"[{job.state.value}] attempt {job.attempt_count}/{job.max_attempts} progress={job.progress_percent:.0f}%")

    job = await runtime.orchestrator.run_scan(on_progress=show)
    _print_signals(runtime)
    if job.error:
        print(f"Scan ended {job.state.value}: {job.error}")
    return 0 if job.state == ScanState.COMPLETED else 1


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(prog="signal-scanner", description="Signal sheet ingestion and scan tracking")
    parser.add_argument("--config", type=str, help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API server with background refresh")
    serve.add_argument("--host", type=str, default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    sub.add_parser("snapshot", help="Fetch once and print classified signals")
    sub.add_parser("scan", help="Trigger a remote scan and follow it to completion")

    args = parser.parse_args(argv)

    settings = load_settings(Path(args.config) if args.config else None)
    configure_logging(settings.log_level)

    if args.command == "serve":
        import uvicorn

        from .api.server import create_app

        uvicorn.run(create_app(settings=settings), host=args.host, port=args.port)
        return 0
    if args.command == "snapshot":
        return asyncio.run(run_snapshot(settings))
    return asyncio.run(run_scan(settings))


if __name__ == "__main__":
    raise SystemExit(main())
