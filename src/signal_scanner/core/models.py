"""
Data models for the signal scanner.
Pydantic models and typed structures; the only logic here is field validation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrendDirection(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    NEUTRAL = "NEUTRAL"


class SignalCategory(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    WEAK_BUY = "WEAK_BUY"
    SELL = "SELL"
    WEAK_SELL = "WEAK_SELL"
    NO_TRADE = "NO_TRADE"


class AdxStrength(str, Enum):
    VERY_STRONG = "VERY_STRONG"
    STRONG = "STRONG"
    MODERATE = "MODERATE"
    WEAK = "WEAK"
    NO_TREND = "NO_TREND"


class ScanState(str, Enum):
    IDLE = "IDLE"
    TRIGGERING = "TRIGGERING"
    POLLING = "POLLING"
    COMPLETED = "COMPLETED"
    TIMED_OUT = "TIMED_OUT"
    FAILED = "FAILED"


class RawSignalRecord(BaseModel):
    """One row of the upstream signal sheet.
    Tickers are not unique across a snapshot; the sheet may list a symbol once per option leg.
    """
    ticker: str = Field(..., description="Ticker symbol")
    current_price: float = Field(0.0, description="Last price, 0 when the cell is unparsable")
    signal: str = Field("", description="Signal headline text")
    option_type: str = Field("", description="CALL / PUT / NO_TRADE")
    tier: str = Field("", description="Quality tier, e.g. A+ or NO_TRADE")
    gates_passed: str = Field("", description="Gate fraction in the form p/q")
    trading_recommendation: str = Field("", description="Recommendation text, e.g. STRONG BUY")
    trade_reason: str = Field("", description="Free-text rationale")
    trade_direction: str = Field("", description="Free-text direction")
    g1_4h: str = Field("", description="4H trend gate")
    g2_1h: str = Field("", description="1H trend gate")
    g3_15m: str = Field("", description="15m trend gate")
    g4_5m: str = Field("", description="5m trend gate")
    g5_adx: str = Field("", description="ADX gate")
    timestamp: str = Field("", description="Upstream analysis timestamp, verbatim")
    adx_value: float = Field(0.0, description="ADX reading, 0 when unparsable")
    adx_trend: str = Field("", description="Upstream ADX strength label")


class Snapshot(BaseModel):
    """The complete set of records considered valid as of one successful fetch."""
    model_config = ConfigDict(frozen=True)

    records: Tuple[RawSignalRecord, ...] = ()
    captured_at: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records


class CacheState(BaseModel):
    committed_snapshot: Snapshot = Field(default_factory=Snapshot)
    is_first_load: bool = True
    is_loading: bool = False
    error: Optional[str] = None
    warning: Optional[str] = None
    last_updated: Optional[datetime] = None


class ParseOk(BaseModel):
    kind: Literal["ok"] = "ok"
    records: List[RawSignalRecord]


class ParseSchemaError(BaseModel):
    kind: Literal["schema_error"] = "schema_error"
    missing: List[str]


class ParseEmpty(BaseModel):
    kind: Literal["empty"] = "empty"


ParseResult = Union[ParseOk, ParseSchemaError, ParseEmpty]


class ScanStatus(BaseModel):
    """Body of the scan-status endpoint. Every field is optional and only trusted when well typed."""
    model_config = ConfigDict(extra="ignore")

    percentage: Optional[float] = None
    status: Optional[str] = None
    success: Optional[bool] = None

    @field_validator("percentage", mode="before")
    @classmethod
    def _numeric_only(cls, v):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        return v

    @field_validator("status", mode="before")
    @classmethod
    def _text_only(cls, v):
        return v if isinstance(v, str) else None

    @field_validator("success", mode="before")
    @classmethod
    def _strict_bool(cls, v):
        return v if isinstance(v, bool) else None

    @property
    def is_complete(self) -> bool:
        return self.status == "completed" or self.success is True


class ScanJob(BaseModel):
    state: ScanState = ScanState.IDLE
    attempt_count: int = 0
    max_attempts: int = 1800
    poll_interval_ms: int = 2000
    progress_percent: float = 0.0
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.state in (ScanState.TRIGGERING, ScanState.POLLING)


class ClassifiedSignal(BaseModel):
    """Decision-ready view of one record, built on demand from a RawSignalRecord."""
    ticker: str
    price: float
    category: SignalCategory
    conviction: int
    high_conviction: bool
    matrix: Dict[str, TrendDirection]
    option_type: str = ""
    tier: str = ""
    adx_value: float = 0.0
    adx_strength: AdxStrength = AdxStrength.NO_TREND
    recommendation: str = ""
    reason: str = ""
    timestamp: str = ""


class SignalSummary(BaseModel):
    """Counts for UI partitioning. strong_buy/buy/strong_sell/sell are disjoint."""
    total: int = 0
    strong_buy: int = 0
    buy: int = 0
    strong_sell: int = 0
    sell: int = 0
    by_category: Dict[SignalCategory, int] = Field(default_factory=dict)
