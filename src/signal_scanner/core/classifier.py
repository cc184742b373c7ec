# classifier.py
# Pure functions turning raw sheet text into trend, conviction and category.
# No I/O; callers apply these lazily on whatever snapshot they hold.

import math
import re
from typing import Dict, Iterable, List, Optional

from .models import (
    AdxStrength,
    ClassifiedSignal,
    RawSignalRecord,
    SignalCategory,
    SignalSummary,
    TrendDirection,
)

CONFIRMED = "✓"

DEFAULT_CONVICTION = 50
HIGH_CONVICTION = 70

_gates_re = re.compile(r"(\d+)/(\d+)")


def parse_trend(gate_text: str) -> TrendDirection:
    """
    'BULLISH@$56.01 ✓' -> UP, 'BEARISH@$40 ✓' -> DOWN.
    A label paired with ✗, or no label at all, is NEUTRAL.
    """
    text = gate_text or ""
    if "BULLISH" in text and CONFIRMED in text:
        return TrendDirection.UP
    if "BEARISH" in text and CONFIRMED in text:
        return TrendDirection.DOWN
    return TrendDirection.NEUTRAL


def get_conviction(gates_passed: str) -> int:
    """
    '4/5' -> 80. Falls back to 50 when there is no p/q fraction (or q is 0).
    Halves round up: '1/8' -> 13.
    """
    m = _gates_re.search(gates_passed or "")
    if not m:
        return DEFAULT_CONVICTION
    passed, total = int(m.group(1)), int(m.group(2))
    if total == 0:
        return DEFAULT_CONVICTION
    return int(math.floor(100 * passed / total + 0.5))


def _norm(text: Optional[str]) -> str:
    return (text or "").upper()


def is_strong_buy(text: str) -> bool:
    t = _norm(text)
    return "STRONG" in t and "BUY" in t


def is_plain_buy(text: str) -> bool:
    t = _norm(text)
    return "BUY" in t and "STRONG" not in t and "WEAK" not in t


def is_strong_sell(text: str) -> bool:
    t = _norm(text)
    return "STRONG" in t and "SELL" in t


def is_plain_sell(text: str) -> bool:
    t = _norm(text)
    return "SELL" in t and "STRONG" not in t and "WEAK" not in t


def get_signal_type(recommendation: str) -> SignalCategory:
    """
    Map recommendation text to a category. Order matters: 'BUY' is a
    substring of 'STRONG BUY' and 'WEAK BUY', so strong variants go first
    and the plain rules exclude STRONG/WEAK outright.
    """
    t = _norm(recommendation)
    if is_strong_buy(t):
        return SignalCategory.STRONG_BUY
    if is_plain_buy(t):
        return SignalCategory.BUY
    if "WEAK BUY" in t:
        return SignalCategory.WEAK_BUY
    # no separate strong-sell category; it joins SELL
    if is_strong_sell(t) or is_plain_sell(t):
        return SignalCategory.SELL
    if "WEAK SELL" in t:
        return SignalCategory.WEAK_SELL
    return SignalCategory.NO_TRADE


def adx_strength(adx_value: float, label: str = "") -> AdxStrength:
    """Bucket an ADX reading. A recognised upstream label wins over the number."""
    key = _norm(label).strip().replace(" ", "_")
    if key in AdxStrength.__members__:
        return AdxStrength[key]
    if adx_value >= 50:
        return AdxStrength.VERY_STRONG
    if adx_value >= 40:
        return AdxStrength.STRONG
    if adx_value >= 25:
        return AdxStrength.MODERATE
    if adx_value >= 20:
        return AdxStrength.WEAK
    return AdxStrength.NO_TREND


def _recommendation(record: RawSignalRecord) -> str:
    return record.trading_recommendation or record.signal


def classify(record: RawSignalRecord) -> ClassifiedSignal:
    conviction = get_conviction(record.gates_passed)
    return ClassifiedSignal(
        ticker=record.ticker,
        price=record.current_price,
        category=get_signal_type(_recommendation(record)),
        conviction=conviction,
        high_conviction=conviction > HIGH_CONVICTION,
        matrix={
            "4H": parse_trend(record.g1_4h),
            "1H": parse_trend(record.g2_1h),
            "15M": parse_trend(record.g3_15m),
            "5M": parse_trend(record.g4_5m),
        },
        option_type=record.option_type,
        tier=record.tier,
        adx_value=record.adx_value,
        adx_strength=adx_strength(record.adx_value, record.adx_trend),
        recommendation=_recommendation(record),
        reason=record.trade_reason,
        timestamp=record.timestamp,
    )


def classify_all(records: Iterable[RawSignalRecord]) -> List[ClassifiedSignal]:
    return [classify(r) for r in records]


def filter_by_category(
    records: Iterable[RawSignalRecord], category: SignalCategory
) -> List[RawSignalRecord]:
    return [r for r in records if get_signal_type(_recommendation(r)) == category]


def summarize(records: Iterable[RawSignalRecord]) -> SignalSummary:
    """Disjoint strong/plain buy/sell counts plus a per-category tally."""
    summary = SignalSummary()
    by_category: Dict[SignalCategory, int] = {c: 0 for c in SignalCategory}
    for r in records:
        text = _recommendation(r)
        summary.total += 1
        summary.strong_buy += int(is_strong_buy(text))
        summary.buy += int(is_plain_buy(text))
        summary.strong_sell += int(is_strong_sell(text))
        summary.sell += int(is_plain_sell(text))
        by_category[get_signal_type(text)] += 1
    summary.by_category = by_category
    return summary
