"""
Error taxonomy for the scanner.
Every failure here is caught by the cache or the scan loop and turned into state;
none of them are meant to reach the process top level.
"""

from typing import List, Optional


class ScannerError(Exception):
    """Base class for all scanner errors."""


class NetworkError(ScannerError):
    """Transport failure or non-success HTTP status on fetch, trigger or poll."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class SchemaError(ScannerError):
    """The source header lacks the columns a record needs."""

    def __init__(self, missing: List[str]) -> None:
        super().__init__(f"Source is missing required columns: {', '.join(missing)}")
        self.missing = missing


class EmptyDataError(ScannerError):
    """The source parsed cleanly but produced zero records."""


class PollError(ScannerError):
    """A single scan-status poll failed. Recovered by the poll loop."""


class ScanInProgressError(ScannerError):
    """A scan was requested while another one is still running."""
