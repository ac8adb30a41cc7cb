"""
Dashboard feed - live channel consumer with REST fallback.
"""

from .component import (
    ACTIVITY_LIMIT,
    AggregateFetcherPort,
    DashboardFeed,
    HttpxAggregateFetcher,
)

__all__ = [
    "ACTIVITY_LIMIT",
    "AggregateFetcherPort",
    "DashboardFeed",
    "HttpxAggregateFetcher",
]
