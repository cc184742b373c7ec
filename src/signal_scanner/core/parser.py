# parser.py
# Quote-aware CSV parsing for the signal sheet export.
# parse() keeps the lenient contract (anything unusable -> []);
# parse_result() / parse_strict() tell schema problems apart from an empty sheet.

import logging
import re
from typing import Dict, List

from .errors import EmptyDataError, SchemaError
from .models import ParseEmpty, ParseOk, ParseResult, ParseSchemaError, RawSignalRecord

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("ticker", "currentPrice")

# upstream column -> RawSignalRecord field
COLUMN_MAP: Dict[str, str] = {
    "ticker": "ticker",
    "currentPrice": "current_price",
    "signal": "signal",
    "optionType": "option_type",
    "tier": "tier",
    "gatesPassed": "gates_passed",
    "tradingRecommendation": "trading_recommendation",
    "tradeReason": "trade_reason",
    "tradeDirection": "trade_direction",
    "g1_4H": "g1_4h",
    "g2_1H": "g2_1h",
    "g3_15m": "g3_15m",
    "g4_5m": "g4_5m",
    "g5_ADX": "g5_adx",
    "timestamp": "timestamp",
    "adxValue": "adx_value",
    "adxTrend": "adx_trend",
}

NUMERIC_FIELDS = ("current_price", "adx_value")

# leading numeric prefix, so "56.01 USD" -> 56.01 and "abc" -> no match
_num_re = re.compile(r"^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


# ---------------------------
# Field helpers
# ---------------------------
def split_line(line: str) -> List[str]:
    """
    Split one CSV line on commas that sit outside double quotes.
    Quote characters are dropped from the output and every field is trimmed.
    'AAPL,"a,b",3' -> ['AAPL', 'a,b', '3']
    """
    values: List[str] = []
    current: List[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            values.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    values.append("".join(current).strip())
    return values


def parse_number(val: str) -> float:
    """
    Lenient float parse: '12.5' -> 12.5, '12.5%' -> 12.5, '' / 'n/a' -> 0.0
    """
    m = _num_re.match(val or "")
    if not m:
        return 0.0
    try:
        return float(m.group(0))
    except ValueError:
        return 0.0


def _split_lines(raw: str) -> List[str]:
    return [line.rstrip("\r") for line in (raw or "").lstrip("\ufeff").strip().split("\n")]


def _to_record(headers: List[str], values: List[str]) -> RawSignalRecord:
    row = {h: (values[i] if i < len(values) else "") for i, h in enumerate(headers)}
    fields = {}
    for column, name in COLUMN_MAP.items():
        cell = row.get(column, "")
        fields[name] = parse_number(cell) if name in NUMERIC_FIELDS else cell
    return RawSignalRecord(**fields)


# ---------------------------
# Public parsing API
# ---------------------------
def parse_result(raw: str) -> ParseResult:
    """Parse raw CSV text into a tagged result: ParseOk, ParseSchemaError or ParseEmpty."""
    lines = _split_lines(raw)
    if len(lines) < 2:
        return ParseEmpty()

    headers = split_line(lines[0])
    missing = [c for c in REQUIRED_COLUMNS if c not in headers]
    if missing:
        logger.warning("CSV header lacks expected columns: %s", ", ".join(missing))
        return ParseSchemaError(missing=missing)

    records = []
    for line in lines[1:]:
        record = _to_record(headers, split_line(line))
        if record.ticker.strip():
            records.append(record)

    if not records:
        return ParseEmpty()
    return ParseOk(records=records)


def parse(raw: str) -> List[RawSignalRecord]:
    """Parse raw CSV text into records. Schema problems and empty sheets both yield []."""
    result = parse_result(raw)
    if isinstance(result, ParseOk):
        return result.records
    return []


def parse_strict(raw: str) -> List[RawSignalRecord]:
    """Like parse(), but raise SchemaError / EmptyDataError instead of returning []."""
    result = parse_result(raw)
    if isinstance(result, ParseSchemaError):
        raise SchemaError(result.missing)
    if isinstance(result, ParseEmpty):
        raise EmptyDataError("No data found in the spreadsheet")
    return result.records
