"""
AggregationEngine - time-window analytics over the append-only event log.

Key behaviors:
- One consistent snapshot of the log per computation
- Duration records joined to the latest preceding view of the same
  (session_id, path); several durations for one view are summed
- Sessions are distinct session ids; gaps longer than the session timeout
  split a session into visit segments for duration purposes
- Breakdown percentages use distinct sessions as the denominator
- Empty windows produce zero values, never errors
"""

from __future__ import annotations

import bisect
import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sitepulse.core.services.analytics_attrib import (
    AttributionConfig,
    classify_traffic_source,
)
from sitepulse.core.services.analytics_useragent import (
    UserAgentConfig,
    parse_user_agent,
)

from ._impl import DefaultTimePort
from ._periods import previous_range, resolve_period, start_of_day
from .models import (
    AnalyticsAggregate,
    BreakdownItem,
    EventSnapshot,
    GroupBy,
    InteractionType,
    OverviewStats,
    PagePerformance,
    PageViewEvent,
    PeriodRange,
    ProjectEngagementItem,
    TimePeriod,
    TrafficPoint,
    TrafficSourceItem,
)
from .ports import ContactSubmissionPort, EventLogPort, TimePort

logger = logging.getLogger(__name__)


# --- Configuration ---


@dataclass(frozen=True)
class AggregateConfig:
    """Aggregation policy constants."""

    session_timeout_minutes: int = 30
    top_pages_limit: int = 10
    project_path_prefix: str = "/projects/"
    cv_download_patterns: tuple[str, ...] = ("cv", "resume", ".pdf")
    attribution: AttributionConfig = field(default_factory=AttributionConfig)
    user_agents: UserAgentConfig = field(default_factory=UserAgentConfig)


DEFAULT_CONFIG = AggregateConfig()


class AnalyticsQueryError(RuntimeError):
    """Raised when the event log or a collaborator cannot be read."""


# --- Helpers ---


def percentage(part: int | float, whole: int | float) -> float:
    """Percentage rounded to 2 decimals; 0 when the whole is 0."""
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def growth(current: int, previous: int) -> float:
    """Percent change versus the previous period."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 2)


def _mean(values: list[int] | list[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def join_durations(snapshot: EventSnapshot) -> dict[str, int]:
    """
    Attach duration records to view records.

    Returns view id -> total recorded seconds. A duration record belongs to
    the most recent view with the same (session_id, path) whose timestamp is
    not after its own. Orphans are dropped.
    """
    views_by_key: dict[tuple[str, str], list[PageViewEvent]] = defaultdict(list)
    for view in snapshot.page_views:
        views_by_key[(view.session_id, view.path)].append(view)

    stamps: dict[tuple[str, str], list[datetime]] = {}
    for key, views in views_by_key.items():
        views.sort(key=lambda v: v.timestamp)
        stamps[key] = [v.timestamp for v in views]

    totals: dict[str, int] = {}
    for update in snapshot.durations:
        key = (update.session_id, update.path)
        if key not in stamps:
            continue
        idx = bisect.bisect_right(stamps[key], update.timestamp) - 1
        if idx < 0:
            continue
        view = views_by_key[key][idx]
        totals[view.id] = totals.get(view.id, 0) + update.duration_seconds

    return totals


@dataclass
class _Session:
    """Per-session working state built from one snapshot."""

    session_id: str
    # (timestamp, end of activity) pairs
    activity: list[tuple[datetime, datetime]] = field(default_factory=list)
    views: list[PageViewEvent] = field(default_factory=list)
    first_seen: datetime | None = None
    user_agent: str | None = None
    _ua_seen: datetime | None = None

    def add(self, ts: datetime, end: datetime, user_agent: str | None) -> None:
        self.activity.append((ts, end))
        if self.first_seen is None or ts < self.first_seen:
            self.first_seen = ts
        if user_agent and (self._ua_seen is None or ts < self._ua_seen):
            self.user_agent = user_agent
            self._ua_seen = ts

    @property
    def paths(self) -> set[str]:
        return {v.path for v in self.views}

    @property
    def bounced(self) -> bool:
        return len(self.paths) == 1

    def first_view(self) -> PageViewEvent | None:
        return min(self.views, key=lambda v: v.timestamp) if self.views else None

    def duration_seconds(self, timeout: timedelta) -> float:
        """Sum of visit segment lengths; a gap over ``timeout`` starts a new segment."""
        if not self.activity:
            return 0.0
        ordered = sorted(self.activity)
        total = 0.0
        seg_start, seg_end = ordered[0]
        for ts, end in ordered[1:]:
            if ts - seg_end > timeout:
                total += (seg_end - seg_start).total_seconds()
                seg_start, seg_end = ts, end
            else:
                seg_end = max(seg_end, end)
        total += (seg_end - seg_start).total_seconds()
        return total


def build_sessions(snapshot: EventSnapshot, view_durations: dict[str, int]) -> dict[str, _Session]:
    """Group view and interaction records by session id."""
    sessions: dict[str, _Session] = {}

    for view in snapshot.page_views:
        session = sessions.setdefault(view.session_id, _Session(view.session_id))
        end = view.timestamp + timedelta(seconds=view_durations.get(view.id, 0))
        session.add(view.timestamp, end, view.user_agent)
        session.views.append(view)

    for interaction in snapshot.interactions:
        session = sessions.setdefault(interaction.session_id, _Session(interaction.session_id))
        session.add(interaction.timestamp, interaction.timestamp, interaction.user_agent)

    return sessions


def session_ids(snapshot: EventSnapshot) -> set[str]:
    """Distinct session ids with a view or interaction in the snapshot."""
    ids = {v.session_id for v in snapshot.page_views}
    ids.update(i.session_id for i in snapshot.interactions)
    return ids


# --- Facet Computations (pure) ---


def compute_overview(
    sessions: dict[str, _Session],
    total_page_views: int,
    previous_sessions: int,
    config: AggregateConfig = DEFAULT_CONFIG,
) -> OverviewStats:
    """Overview counters for one window."""
    total = len(sessions)
    if total == 0:
        return OverviewStats(visitor_growth=growth(0, previous_sessions))

    timeout = timedelta(minutes=config.session_timeout_minutes)
    durations = [s.duration_seconds(timeout) for s in sessions.values()]

    with_views = [s for s in sessions.values() if s.views]
    bounced = sum(1 for s in with_views if s.bounced)

    return OverviewStats(
        total_visitors=total,
        total_page_views=total_page_views,
        avg_session_duration=_mean(durations),
        bounce_rate=percentage(bounced, len(with_views)),
        visitor_growth=growth(total, previous_sessions),
    )


def _bucket_key(day: datetime, group_by: GroupBy) -> str:
    if group_by == "week":
        return (day - timedelta(days=day.weekday())).date().isoformat()
    if group_by == "month":
        return f"{day.year:04d}-{day.month:02d}"
    return day.date().isoformat()


def compute_traffic_growth(
    snapshot: EventSnapshot,
    window: PeriodRange,
    group_by: GroupBy = "day",
) -> tuple[TrafficPoint, ...]:
    """Zero-filled series of distinct sessions and page views per bucket."""
    keys: list[str] = []
    day = start_of_day(window.start)
    while day < window.end:
        key = _bucket_key(day, group_by)
        if not keys or keys[-1] != key:
            keys.append(key)
        day += timedelta(days=1)

    visitors: dict[str, set[str]] = defaultdict(set)
    page_views: dict[str, int] = defaultdict(int)

    for view in snapshot.page_views:
        key = _bucket_key(start_of_day(view.timestamp), group_by)
        visitors[key].add(view.session_id)
        page_views[key] += 1

    for interaction in snapshot.interactions:
        key = _bucket_key(start_of_day(interaction.timestamp), group_by)
        visitors[key].add(interaction.session_id)

    return tuple(
        TrafficPoint(date=key, visitors=len(visitors.get(key, ())), page_views=page_views.get(key, 0))
        for key in keys
    )


def _breakdown(labels: Iterable[str], total: int) -> tuple[BreakdownItem, ...]:
    counts: dict[str, int] = defaultdict(int)
    for label in labels:
        counts[label] += 1
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return tuple(
        BreakdownItem(name=name, visitors=count, percentage=percentage(count, total))
        for name, count in ordered
    )


def compute_device_breakdowns(
    sessions: dict[str, _Session],
    config: AggregateConfig = DEFAULT_CONFIG,
) -> tuple[tuple[BreakdownItem, ...], tuple[BreakdownItem, ...], tuple[BreakdownItem, ...]]:
    """Device, browser and OS breakdowns from each session's first user agent."""
    infos = [parse_user_agent(s.user_agent, config.user_agents) for s in sessions.values()]
    total = len(infos)
    return (
        _breakdown((i.device for i in infos), total),
        _breakdown((i.browser for i in infos), total),
        _breakdown((i.os for i in infos), total),
    )


def compute_traffic_sources(
    sessions: dict[str, _Session],
    config: AggregateConfig = DEFAULT_CONFIG,
) -> tuple[TrafficSourceItem, ...]:
    """Classify each session by its first view's referer."""
    counts: dict[tuple[str, str], int] = defaultdict(int)
    for session in sessions.values():
        first = session.first_view()
        attribution = classify_traffic_source(first.referer if first else None, config.attribution)
        counts[(attribution.source.value, attribution.name)] += 1

    total = len(sessions)
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return tuple(
        TrafficSourceItem(
            source=source,
            name=name,
            visitors=count,
            percentage=percentage(count, total),
        )
        for (source, name), count in ordered
    )


def compute_top_pages(
    sessions: dict[str, _Session],
    view_durations: dict[str, int],
    limit: int = 10,
) -> tuple[PagePerformance, ...]:
    """
    Page performance ranked by views.

    Average time on page is taken over views that received a duration.
    Bounce rate per page is sessions whose only viewed path was the page,
    over sessions that viewed it.
    """
    views: dict[str, int] = defaultdict(int)
    timings: dict[str, list[int]] = defaultdict(list)
    viewers: dict[str, int] = defaultdict(int)
    bouncers: dict[str, int] = defaultdict(int)

    for session in sessions.values():
        for view in session.views:
            views[view.path] += 1
            if view.id in view_durations:
                timings[view.path].append(view_durations[view.id])
        paths = session.paths
        for path in paths:
            viewers[path] += 1
        if len(paths) == 1:
            bouncers[next(iter(paths))] += 1

    ordered = sorted(views.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
    return tuple(
        PagePerformance(
            path=path,
            page_views=count,
            avg_time_on_page=_mean(timings[path]),
            bounce_rate=percentage(bouncers[path], viewers[path]),
        )
        for path, count in ordered
    )


def compute_project_engagement(
    snapshot: EventSnapshot,
    view_durations: dict[str, int],
    config: AggregateConfig = DEFAULT_CONFIG,
) -> tuple[ProjectEngagementItem, ...]:
    """Views and average recorded time for project detail pages."""
    views: dict[str, int] = defaultdict(int)
    timings: dict[str, list[int]] = defaultdict(list)

    for view in snapshot.page_views:
        if not view.path.startswith(config.project_path_prefix):
            continue
        views[view.path] += 1
        if view.id in view_durations:
            timings[view.path].append(view_durations[view.id])

    ordered = sorted(views.items(), key=lambda kv: (-kv[1], kv[0]))
    return tuple(
        ProjectEngagementItem(path=path, views=count, avg_time=_mean(timings[path]))
        for path, count in ordered
    )


def count_cv_downloads(snapshot: EventSnapshot, config: AggregateConfig = DEFAULT_CONFIG) -> int:
    """Download interactions whose element or value looks like a CV."""
    count = 0
    for interaction in snapshot.interactions:
        if interaction.type != InteractionType.DOWNLOAD:
            continue
        haystack = f"{interaction.element or ''} {interaction.value or ''}".lower()
        if any(pattern in haystack for pattern in config.cv_download_patterns):
            count += 1
    return count


def compute_aggregate(
    snapshot: EventSnapshot,
    window: PeriodRange,
    previous_sessions: int = 0,
    contact_submissions: int = 0,
    config: AggregateConfig = DEFAULT_CONFIG,
) -> AnalyticsAggregate:
    """Compute every facet from one snapshot."""
    view_durations = join_durations(snapshot)
    sessions = build_sessions(snapshot, view_durations)
    devices, browsers, systems = compute_device_breakdowns(sessions, config)

    return AnalyticsAggregate(
        period=window,
        overview=compute_overview(sessions, len(snapshot.page_views), previous_sessions, config),
        traffic_growth=compute_traffic_growth(snapshot, window),
        device_breakdown=devices,
        browser_stats=browsers,
        os_stats=systems,
        traffic_sources=compute_traffic_sources(sessions, config),
        top_pages=compute_top_pages(sessions, view_durations, config.top_pages_limit),
        contact_submissions=contact_submissions,
        cv_downloads=count_cv_downloads(snapshot, config),
        project_engagement=compute_project_engagement(snapshot, view_durations, config),
    )


# --- Aggregation Engine ---


class AggregationEngine:
    """
    Read-only analytics over the event log.

    Each public method reads its own snapshot; nothing is cached between
    calls.
    """

    def __init__(
        self,
        event_log: EventLogPort,
        contacts: ContactSubmissionPort | None = None,
        time_port: TimePort | None = None,
        config: AggregateConfig | None = None,
    ) -> None:
        """Initialize engine."""
        self._log = event_log
        self._contacts = contacts
        self._time = time_port or DefaultTimePort()
        self._config = config or DEFAULT_CONFIG

    @property
    def config(self) -> AggregateConfig:
        return self._config

    def resolve(
        self,
        period: str | TimePeriod | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> PeriodRange:
        """Resolve a period name against the engine clock."""
        return resolve_period(period, self._time.now_utc(), start_date, end_date)

    def _read(self, window: PeriodRange) -> EventSnapshot:
        try:
            return self._log.snapshot(window.start, window.end)
        except Exception as e:
            logger.exception("Event log read failed for %s..%s", window.start, window.end)
            raise AnalyticsQueryError("Failed to read analytics events") from e

    def _count_contacts(self, window: PeriodRange) -> int:
        if self._contacts is None:
            return 0
        try:
            return self._contacts.count_submissions(window.start, window.end)
        except Exception as e:
            logger.exception("Contact submission count failed")
            raise AnalyticsQueryError("Failed to count contact submissions") from e

    def _sessions(self, window: PeriodRange) -> tuple[EventSnapshot, dict[str, int], dict[str, _Session]]:
        snapshot = self._read(window)
        durations = join_durations(snapshot)
        return snapshot, durations, build_sessions(snapshot, durations)

    # --- Full aggregate ---

    def comprehensive(self, window: PeriodRange) -> AnalyticsAggregate:
        """Full dashboard aggregate for ``window``."""
        snapshot = self._read(window)
        previous = len(session_ids(self._read(previous_range(window))))
        aggregate = compute_aggregate(
            snapshot,
            window,
            previous_sessions=previous,
            contact_submissions=self._count_contacts(window),
            config=self._config,
        )
        logger.debug(
            "Aggregate %s: %d sessions, %d views",
            window.period.value,
            aggregate.overview.total_visitors,
            aggregate.overview.total_page_views,
        )
        return aggregate

    # --- Single facets ---

    def overview(self, window: PeriodRange) -> OverviewStats:
        snapshot, _, sessions = self._sessions(window)
        previous = len(session_ids(self._read(previous_range(window))))
        return compute_overview(sessions, len(snapshot.page_views), previous, self._config)

    def traffic_growth(self, window: PeriodRange, group_by: GroupBy = "day") -> tuple[TrafficPoint, ...]:
        return compute_traffic_growth(self._read(window), window, group_by)

    def device_breakdown(self, window: PeriodRange) -> tuple[BreakdownItem, ...]:
        _, _, sessions = self._sessions(window)
        return compute_device_breakdowns(sessions, self._config)[0]

    def browser_stats(self, window: PeriodRange) -> tuple[BreakdownItem, ...]:
        _, _, sessions = self._sessions(window)
        return compute_device_breakdowns(sessions, self._config)[1]

    def os_stats(self, window: PeriodRange) -> tuple[BreakdownItem, ...]:
        _, _, sessions = self._sessions(window)
        return compute_device_breakdowns(sessions, self._config)[2]

    def traffic_sources(self, window: PeriodRange) -> tuple[TrafficSourceItem, ...]:
        _, _, sessions = self._sessions(window)
        return compute_traffic_sources(sessions, self._config)

    def top_pages(self, window: PeriodRange, limit: int | None = None) -> tuple[PagePerformance, ...]:
        _, durations, sessions = self._sessions(window)
        return compute_top_pages(sessions, durations, limit or self._config.top_pages_limit)

    def contact_submissions(self, window: PeriodRange) -> int:
        return self._count_contacts(window)

    def cv_downloads(self, window: PeriodRange) -> int:
        return count_cv_downloads(self._read(window), self._config)

    def project_engagement(self, window: PeriodRange) -> tuple[ProjectEngagementItem, ...]:
        snapshot = self._read(window)
        return compute_project_engagement(snapshot, join_durations(snapshot), self._config)


# --- Factory ---


def create_aggregation_engine(
    event_log: EventLogPort,
    contacts: ContactSubmissionPort | None = None,
    time_port: TimePort | None = None,
    config: AggregateConfig | None = None,
) -> AggregationEngine:
    """Create an AggregationEngine."""
    return AggregationEngine(
        event_log=event_log,
        contacts=contacts,
        time_port=time_port,
        config=config,
    )
