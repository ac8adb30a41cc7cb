"""SitePulse - visitor analytics: tracking, ingestion, live channel and aggregation."""

__version__ = "0.1.0"
