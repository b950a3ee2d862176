"""Feed ingestion with full-content extraction."""

__version__ = "0.1.0"
