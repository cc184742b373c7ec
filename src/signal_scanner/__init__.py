"""Signal sheet ingestion, resilient caching and remote scan tracking."""

__version__ = "0.1.0"
