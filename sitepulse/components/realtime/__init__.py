"""
Real-time channel - live visitor activity and counts for dashboards.
"""

from ._live import ActivityRing, LiveVisitorCounter
from .component import (
    AnalyticsHub,
    Connection,
    HubConfig,
    create_analytics_hub,
    derive_activity,
    run_live_count_ticker,
)
from .models import (
    ActivityType,
    AnalyticsRequest,
    LiveActivity,
    RequestUpdateMessage,
    SubscribeMessage,
    UnsubscribeMessage,
    analytics_error,
    analytics_update,
    live_visitor_count,
    parse_inbound,
    visitor_activity,
)

__all__ = [
    "ActivityRing",
    "ActivityType",
    "AnalyticsHub",
    "AnalyticsRequest",
    "Connection",
    "HubConfig",
    "LiveActivity",
    "LiveVisitorCounter",
    "RequestUpdateMessage",
    "SubscribeMessage",
    "UnsubscribeMessage",
    "analytics_error",
    "analytics_update",
    "create_analytics_hub",
    "derive_activity",
    "live_visitor_count",
    "parse_inbound",
    "run_live_count_ticker",
    "visitor_activity",
]
