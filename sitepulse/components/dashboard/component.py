"""
DashboardFeed - dashboard-side consumer of the real-time channel.

Key behaviors:
- analyticsUpdate replaces the aggregate, visitorActivity appends to a
  capped list, liveVisitorCount sets the count, analyticsError sets a
  transient error
- With the channel down, or before any update arrives, the aggregate is
  fetched over REST
- Fetch failures set the error string and never raise
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

ACTIVITY_LIMIT = 50


class AggregateFetcherPort(Protocol):
    """REST fallback for the comprehensive aggregate."""

    def fetch_comprehensive(
        self,
        period: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any]: ...


class HttpxAggregateFetcher:
    """Fetches ``GET /analytics/comprehensive`` with httpx."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
        path: str = "/analytics/comprehensive",
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._path = path

    def fetch_comprehensive(
        self,
        period: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any]:
        params = {
            k: v
            for k, v in (("period", period), ("startDate", start_date), ("endDate", end_date))
            if v is not None
        }
        response = self._client.get(self._path, params=params)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Aggregate response must be a JSON object")
        return data

    def close(self) -> None:
        self._client.close()


class DashboardFeed:
    """State of one dashboard view of the live channel."""

    def __init__(self, fetcher: AggregateFetcherPort, activity_limit: int = ACTIVITY_LIMIT) -> None:
        self._fetcher = fetcher
        self._activity_limit = activity_limit

        self.analytics: dict[str, Any] | None = None
        self.recent_activity: list[dict[str, Any]] = []
        self.live_visitors = 0
        self.is_connected = False
        self.error: str | None = None

    # --- Connection state ---

    def on_connect(self) -> list[dict[str, Any]]:
        """Mark connected; returns the frames to send (subscribe, then request)."""
        self.is_connected = True
        self.error = None
        return [
            {"event": "subscribeToAnalytics", "data": None},
            {"event": "requestAnalyticsUpdate", "data": None},
        ]

    def on_disconnect(self) -> None:
        self.is_connected = False
        self.ensure_data()

    def on_connect_error(self, message: str = "Failed to connect to real-time analytics") -> None:
        self.is_connected = False
        self.error = message
        self.ensure_data()

    def close_frames(self) -> list[dict[str, Any]]:
        return [{"event": "unsubscribeFromAnalytics", "data": None}]

    def request_update(
        self,
        period: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict[str, Any] | None:
        """Frame asking for a fresh aggregate, or None while disconnected."""
        if not self.is_connected:
            return None
        data = {
            k: v
            for k, v in (("period", period), ("startDate", start_date), ("endDate", end_date))
            if v is not None
        }
        return {"event": "requestAnalyticsUpdate", "data": data or None}

    # --- Inbound frames ---

    def apply(self, frame: dict[str, Any]) -> None:
        """Apply one outbound channel frame to the feed state."""
        event = frame.get("event")
        data = frame.get("data")

        if event == "analyticsUpdate" and isinstance(data, dict):
            self.analytics = data
        elif event == "visitorActivity" and isinstance(data, dict):
            self.recent_activity.append(data)
            del self.recent_activity[: -self._activity_limit]
        elif event == "liveVisitorCount" and isinstance(data, dict):
            self.live_visitors = int(data.get("count", 0))
        elif event == "analyticsError":
            message = data.get("message") if isinstance(data, dict) else None
            self.error = message or "Analytics error"
        else:
            logger.debug("Ignoring unknown frame %r", event)

    def clear_activity(self) -> None:
        self.recent_activity = []

    # --- REST fallback ---

    def ensure_data(self) -> bool:
        """Fetch the aggregate over REST if none has arrived. Returns True when data is present."""
        if self.analytics is not None:
            return True
        try:
            self.analytics = self._fetcher.fetch_comprehensive()
        except Exception as e:
            logger.warning("Failed to fetch initial analytics: %s", e)
            self.error = "Failed to fetch analytics data"
            return False
        return True
