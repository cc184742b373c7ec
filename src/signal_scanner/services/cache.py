"""
ResilientCache: owns the current signal snapshot.

Every refresh fetches and parses the sheet, then either commits the new
records, holds the old snapshot with a warning, or (before anything was
ever committed) reports a blocking error. A non-empty snapshot is never
replaced by an empty one.

Overlapping refresh() calls share one in-flight refresh instead of
racing each other.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Protocol

from ..core.errors import EmptyDataError, SchemaError
from ..core.models import CacheState, RawSignalRecord, Snapshot, utcnow
from ..core.parser import parse_strict

logger = logging.getLogger(__name__)

NO_DATA_ERROR = "No data found in the spreadsheet"
EMPTY_WARNING = "Source returned empty data; showing previous snapshot"


class Fetcher(Protocol):
    async def fetch(self, url: str) -> str: ...


class ResilientCache:

    def __init__(
        self,
        fetcher: Fetcher,
        url: str,
        parser: Callable[[str], List[RawSignalRecord]] = parse_strict,
    ) -> None:
        self._fetcher = fetcher
        self._url = url
        self._parser = parser
        self._state = CacheState()
        self._inflight: Optional[asyncio.Task] = None
        self.refresh_count = 0

    @property
    def state(self) -> CacheState:
        """Copy of the current state; consumers cannot mutate the cache through it."""
        return self._state.model_copy()

    @property
    def snapshot(self) -> Snapshot:
        return self._state.committed_snapshot

    async def refresh(self) -> CacheState:
        """
        Run one fetch -> parse -> commit cycle, or join the one already running.
        Never raises for fetch/parse failures; they end up in state.error / state.warning.
        """
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._refresh_once())
        else:
            logger.debug("Refresh already in flight; joining it")
        # shield so one caller being cancelled does not cancel the shared refresh
        return await asyncio.shield(self._inflight)

    async def _refresh_once(self) -> CacheState:
        self.refresh_count += 1
        self._state.is_loading = True
        try:
            raw = await self._fetcher.fetch(self._url)
            records = self._parser(raw)
        except EmptyDataError:
            self._hold(NO_DATA_ERROR, EMPTY_WARNING)
        except SchemaError as e:
            self._hold(str(e), f"{e}; showing previous snapshot")
        except Exception as e:
            message = str(e) or type(e).__name__
            self._hold(message, f"Refresh failed: {message}; showing cached data")
        else:
            if records:
                self._commit(records)
            else:
                self._hold(NO_DATA_ERROR, EMPTY_WARNING)
        finally:
            self._state.is_loading = False
        return self.state

    def _commit(self, records: List[RawSignalRecord]) -> None:
        now = utcnow()
        self._state.committed_snapshot = Snapshot(records=tuple(records), captured_at=now)
        self._state.error = None
        self._state.warning = None
        self._state.is_first_load = False
        self._state.last_updated = now
        logger.info("Committed snapshot with %d signals", len(records))

    def _hold(self, error: str, warning: str) -> None:
        """Keep the committed snapshot; report an error on first load, a warning afterwards."""
        if self._state.is_first_load:
            self._state.error = error
            logger.error("Initial signal load failed: %s", error)
        else:
            self._state.warning = warning
            logger.warning("%s", warning)
