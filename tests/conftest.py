"""Shared fakes for scanner tests. No test touches the network."""
from __future__ import annotations

import asyncio
from typing import Any

import pytest

from signal_scanner.core.models import ScanStatus

HEADER = (
    "ticker,currentPrice,signal,optionType,tier,gatesPassed,tradingRecommendation,"
    "tradeReason,tradeDirection,g1_4H,g2_1H,g3_15m,g4_5m,g5_ADX,timestamp,adxValue,adxTrend"
)


def make_csv(*rows: str) -> str:
    return "\n".join([HEADER, *rows]) + "\n"


AAPL_ROW = (
    'AAPL,189.5,✅ BUY,CALL,A,4/5,✅ BUY,"Trend up, volume rising",LONG,'
    "BULLISH@$185 ✓,BULLISH@$188 ✓,BEARISH@$190 ✗,BULLISH@$189 ✓,ADX 32 ✓,2026-10-18 09:45,32.4,MODERATE"
)
TSLA_ROW = (
    "TSLA,241.1,STRONG SELL,PUT,A+,6/6,STRONG SELL,Breakdown,SHORT,"
    "BEARISH@$250 ✓,BEARISH@$245 ✓,BEARISH@$242 ✓,BEARISH@$241 ✓,ADX 55 ✓,2026-10-18 09:45,55.2,VERY_STRONG"
)


class FakeFetcher:
    """Returns (or raises) queued responses in order; repeats the last one."""

    def __init__(self, *responses: Any, delay: float = 0.0) -> None:
        self.responses = list(responses)
        self.delay = delay
        self.calls: list[str] = []

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item


class CountingCache:
    """Stands in for ResilientCache in orchestrator tests."""

    def __init__(self) -> None:
        self.refresh_calls = 0

    async def refresh(self):
        self.refresh_calls += 1
        return None


class FakeScanClient:
    """trigger() returns `trigger_status` (or raises it); poll_status() walks `polls`."""

    def __init__(self, trigger_status: Any = 202, polls: list[Any] | None = None) -> None:
        self.trigger_status = trigger_status
        self.polls = list(polls or [])
        self.trigger_calls = 0
        self.poll_calls = 0

    async def trigger(self) -> int:
        self.trigger_calls += 1
        if isinstance(self.trigger_status, BaseException):
            raise self.trigger_status
        return self.trigger_status

    async def poll_status(self) -> ScanStatus:
        self.poll_calls += 1
        item = self.polls[self.poll_calls - 1] if self.poll_calls <= len(self.polls) else {}
        if isinstance(item, BaseException):
            raise item
        return ScanStatus.model_validate(item)


async def no_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def csv_two_rows() -> str:
    return make_csv(AAPL_ROW, TSLA_ROW)
