"""
Analytics component models.

Event records are append-only. A page view is stored as a view record and,
later, zero or more duration records that are joined back to it at
aggregation time by (session_id, path, preceding timestamp).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Literal

# --- Enums ---


class InteractionType(str, Enum):
    """Interaction taxonomy."""

    FORM_SUBMISSION = "form_submission"
    BUTTON_CLICK = "button_click"
    DOWNLOAD = "download"
    EXTERNAL_LINK = "external_link"
    CUSTOM_EVENT = "custom_event"


class TimePeriod(str, Enum):
    """Requestable aggregation windows."""

    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_7_DAYS = "last_7_days"
    LAST_30_DAYS = "last_30_days"
    LAST_90_DAYS = "last_90_days"
    THIS_MONTH = "this_month"
    LAST_MONTH = "last_month"
    THIS_YEAR = "this_year"
    CUSTOM = "custom"


GroupBy = Literal["day", "week", "month"]


# --- Event Records ---


@dataclass(frozen=True)
class PageViewEvent:
    """View record, created once per page view."""

    id: str
    session_id: str
    path: str
    timestamp: datetime
    referer: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class DurationUpdate:
    """Duration record correlated with an earlier view of the same path."""

    id: str
    session_id: str
    path: str
    duration_seconds: int
    timestamp: datetime


@dataclass(frozen=True)
class InteractionEvent:
    """Interaction record."""

    id: str
    type: InteractionType
    session_id: str
    path: str
    timestamp: datetime
    element: str | None = None
    value: str | None = None
    metadata: dict[str, Any] | None = None
    user_agent: str | None = None


EventRecord = PageViewEvent | DurationUpdate | InteractionEvent


@dataclass(frozen=True)
class EventSnapshot:
    """Consistent read of the event log for one window."""

    page_views: tuple[PageViewEvent, ...] = ()
    durations: tuple[DurationUpdate, ...] = ()
    interactions: tuple[InteractionEvent, ...] = ()

    def is_empty(self) -> bool:
        return not (self.page_views or self.durations or self.interactions)


# --- Aggregate Output ---


@dataclass(frozen=True)
class PeriodRange:
    """Resolved half-open window [start, end)."""

    period: TimePeriod
    start: datetime
    end: datetime

    @property
    def length(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class OverviewStats:
    total_visitors: int = 0
    total_page_views: int = 0
    avg_session_duration: float = 0.0
    bounce_rate: float = 0.0
    visitor_growth: float = 0.0


@dataclass(frozen=True)
class TrafficPoint:
    date: str
    visitors: int = 0
    page_views: int = 0


@dataclass(frozen=True)
class BreakdownItem:
    """One bucket of a device/browser/OS breakdown."""

    name: str
    visitors: int
    percentage: float


@dataclass(frozen=True)
class TrafficSourceItem:
    """Sessions grouped by referer classification."""

    source: str  # direct | search | social | referral
    name: str
    visitors: int
    percentage: float


@dataclass(frozen=True)
class PagePerformance:
    path: str
    page_views: int
    avg_time_on_page: float
    bounce_rate: float


@dataclass(frozen=True)
class ProjectEngagementItem:
    path: str
    views: int
    avg_time: float


@dataclass(frozen=True)
class AnalyticsAggregate:
    """Full dashboard aggregate for one period."""

    period: PeriodRange
    overview: OverviewStats = field(default_factory=OverviewStats)
    traffic_growth: tuple[TrafficPoint, ...] = ()
    device_breakdown: tuple[BreakdownItem, ...] = ()
    browser_stats: tuple[BreakdownItem, ...] = ()
    os_stats: tuple[BreakdownItem, ...] = ()
    traffic_sources: tuple[TrafficSourceItem, ...] = ()
    top_pages: tuple[PagePerformance, ...] = ()
    contact_submissions: int = 0
    cv_downloads: int = 0
    project_engagement: tuple[ProjectEngagementItem, ...] = ()


# --- Ingestion Input/Output ---


@dataclass(frozen=True)
class TrackPageViewInput:
    """Raw page-view submission (view or duration update)."""

    data: dict[str, Any]
    user_agent: str | None = None
    client_key: str | None = None


@dataclass(frozen=True)
class TrackInteractionInput:
    """Raw interaction submission."""

    data: dict[str, Any]
    user_agent: str | None = None
    client_key: str | None = None


@dataclass(frozen=True)
class IngestOutput:
    """Result of one ingestion call."""

    accepted: bool
    tracked: bool = False
    record: EventRecord | None = None
    errors: list[Any] = field(default_factory=list)
