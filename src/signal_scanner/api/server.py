"""
FastAPI server providing read-only visibility into the signal cache and scan control.
This file wires:
- ScannerRuntime (cache + refresh scheduler + scan orchestrator)
- Web endpoints for inspection, manual refresh and scan triggering
"""

import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..app import ScannerRuntime, build_runtime
from ..core.classifier import classify_all, filter_by_category, summarize
from ..core.config import Settings, load_settings
from ..core.errors import ScanInProgressError
from ..core.models import CacheState, ClassifiedSignal, ScanJob, SignalCategory, SignalSummary

logger = logging.getLogger(__name__)


class SignalsResponse(BaseModel):
    error: Optional[str] = None
    warning: Optional[str] = None
    is_loading: bool = False
    is_first_load: bool = True
    last_updated: Optional[str] = None
    count: int = 0
    signals: List[ClassifiedSignal] = []


class ScanResponse(BaseModel):
    job: ScanJob
    last_job: Optional[ScanJob] = None


def _signals_response(state: CacheState, category: Optional[SignalCategory] = None) -> SignalsResponse:
    records = list(state.committed_snapshot.records)
    if category is not None:
        records = filter_by_category(records, category)
    signals = classify_all(records)
    return SignalsResponse(
        error=state.error,
        warning=state.warning,
        is_loading=state.is_loading,
        is_first_load=state.is_first_load,
        last_updated=state.last_updated.isoformat() if state.last_updated else None,
        count=len(signals),
        signals=signals,
    )


def create_app(settings: Optional[Settings] = None, runtime: Optional[ScannerRuntime] = None) -> FastAPI:
    """Build the API. Pass a prepared runtime to control its collaborators (tests do)."""
    app = FastAPI(title="Signal Scanner API", version="0.1.0")
    app.state.runtime = runtime

    @app.on_event("startup")
    async def startup_event():
        if app.state.runtime is None:
            app.state.runtime = build_runtime(settings or load_settings())
        await app.state.runtime.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.runtime is not None:
            await app.state.runtime.stop()

    def _runtime() -> ScannerRuntime:
        if app.state.runtime is None:
            raise HTTPException(status_code=503, detail="Scanner runtime not started")
        return app.state.runtime

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/signals", response_model=SignalsResponse)
    async def list_signals(category: Optional[SignalCategory] = None):
        """Current committed snapshot, classified, plus the cache's error/warning channel."""
        return _signals_response(_runtime().cache.state, category)

    @app.get("/signals/summary", response_model=SignalSummary)
    async def signals_summary():
        return summarize(_runtime().cache.snapshot.records)

    @app.post("/signals/refresh", response_model=SignalsResponse)
    async def refresh_signals():
        """Run a refresh now (or join the one in flight) and return the resulting state."""
        state = await _runtime().cache.refresh()
        return _signals_response(state)

    @app.post("/scan", status_code=202, response_model=ScanResponse)
    async def start_scan():
        rt = _runtime()
        try:
            rt.start_scan()
        except ScanInProgressError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return ScanResponse(job=rt.orchestrator.job.model_copy(), last_job=rt.orchestrator.last_job)

    @app.get("/scan", response_model=ScanResponse)
    async def scan_status():
        rt = _runtime()
        return ScanResponse(job=rt.orchestrator.job, last_job=rt.orchestrator.last_job)

    return app
