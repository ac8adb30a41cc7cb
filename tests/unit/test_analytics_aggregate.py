"""
Tests for the AggregationEngine.

Covers duration joining, sessions and bounce, breakdowns, traffic sources,
growth series, CV downloads, project engagement and failure handling.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from itertools import count

import pytest

from sitepulse.adapters.clock import FixedClock
from sitepulse.adapters.sqlite.event_log import InMemoryContactSource
from sitepulse.components.analytics import (
    AggregateConfig,
    AggregationEngine,
    AnalyticsQueryError,
    DurationUpdate,
    EventSnapshot,
    InMemoryEventLog,
    InteractionEvent,
    InteractionType,
    PageViewEvent,
    TrafficSource,
    growth,
    join_durations,
    percentage,
)

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)

_ids = count(1)


def at(hour: int, minute: int = 0, second: int = 0, day: int = 15) -> datetime:
    return datetime(2024, 6, day, hour, minute, second, tzinfo=UTC)


def view(
    session_id: str,
    path: str,
    ts: datetime,
    referer: str | None = None,
    user_agent: str | None = None,
) -> PageViewEvent:
    return PageViewEvent(
        id=f"v{next(_ids)}",
        session_id=session_id,
        path=path,
        timestamp=ts,
        referer=referer,
        user_agent=user_agent,
    )


def duration(session_id: str, path: str, seconds: int, ts: datetime) -> DurationUpdate:
    return DurationUpdate(
        id=f"d{next(_ids)}",
        session_id=session_id,
        path=path,
        duration_seconds=seconds,
        timestamp=ts,
    )


def interaction(
    session_id: str,
    kind: InteractionType,
    ts: datetime,
    element: str | None = None,
    value: str | None = None,
) -> InteractionEvent:
    return InteractionEvent(
        id=f"i{next(_ids)}",
        type=kind,
        session_id=session_id,
        path="/",
        timestamp=ts,
        element=element,
        value=value,
    )


class FailingEventLog:
    """Event log whose reads always fail."""

    def append(self, record: object) -> None:
        pass

    def snapshot(self, start: datetime, end: datetime) -> EventSnapshot:
        raise OSError("disk unavailable")


# --- Fixtures ---


@pytest.fixture
def event_log() -> InMemoryEventLog:
    return InMemoryEventLog()


@pytest.fixture
def contacts() -> InMemoryContactSource:
    return InMemoryContactSource()


@pytest.fixture
def engine(event_log: InMemoryEventLog, contacts: InMemoryContactSource) -> AggregationEngine:
    """Engine over an in-memory log with a fixed clock."""
    return AggregationEngine(event_log, contacts=contacts, time_port=FixedClock(NOW))


def record_all(log: InMemoryEventLog, *records: object) -> None:
    for record in records:
        log.append(record)  # type: ignore[arg-type]


# --- Helpers ---


class TestHelpers:
    """Test rounding helpers."""

    def test_percentage(self) -> None:
        """Percentages round to 2 decimals and tolerate zero totals."""
        assert percentage(1, 3) == 33.33
        assert percentage(0, 0) == 0.0

    def test_growth(self) -> None:
        """Growth versus an empty previous period is 100 or 0."""
        assert growth(5, 0) == 100.0
        assert growth(0, 0) == 0.0
        assert growth(3, 4) == -25.0
        assert growth(2, 1) == 100.0


# --- Duration Join ---


class TestJoinDurations:
    """Test attaching duration records to views."""

    def test_joins_latest_preceding_view(self) -> None:
        """Duration belongs to the most recent view of the same path."""
        first = view("s1", "/", at(10, 0))
        second = view("s1", "/", at(10, 10))
        snapshot = EventSnapshot(
            page_views=(first, second),
            durations=(duration("s1", "/", 20, at(10, 5)), duration("s1", "/", 30, at(10, 10, 30))),
        )

        assert join_durations(snapshot) == {first.id: 20, second.id: 30}

    def test_multiple_durations_summed(self) -> None:
        """Several duration records for one view add up."""
        v = view("s1", "/", at(10, 0))
        snapshot = EventSnapshot(
            page_views=(v,),
            durations=(duration("s1", "/", 10, at(10, 0, 10)), duration("s1", "/", 5, at(10, 1))),
        )

        assert join_durations(snapshot) == {v.id: 15}

    def test_orphans_dropped(self) -> None:
        """Durations without a matching earlier view are ignored."""
        v = view("s1", "/", at(10, 0))
        snapshot = EventSnapshot(
            page_views=(v,),
            durations=(
                duration("s2", "/", 10, at(10, 1)),
                duration("s1", "/about", 10, at(10, 1)),
                duration("s1", "/", 10, at(9, 59)),
            ),
        )

        assert join_durations(snapshot) == {}


# --- Overview ---


class TestOverview:
    """Test overview counters."""

    def test_empty_log_gives_zeros(self, engine: AggregationEngine) -> None:
        """No events yields a zero-valued aggregate, not an error."""
        aggregate = engine.comprehensive(engine.resolve("today"))

        assert aggregate.overview.total_visitors == 0
        assert aggregate.overview.total_page_views == 0
        assert aggregate.overview.avg_session_duration == 0.0
        assert aggregate.overview.bounce_rate == 0.0
        assert aggregate.device_breakdown == ()
        assert aggregate.traffic_sources == ()
        assert aggregate.top_pages == ()
        assert aggregate.cv_downloads == 0
        assert [p.visitors for p in aggregate.traffic_growth] == [0]

    def test_single_view_with_duration(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """One view plus a 45 s duration averages 45 s."""
        record_all(event_log, view("s1", "/", at(10, 0)), duration("s1", "/", 45, at(10, 0, 45)))

        overview = engine.overview(engine.resolve("today"))

        assert overview.total_visitors == 1
        assert overview.total_page_views == 1
        assert overview.avg_session_duration == 45.0

    def test_single_page_session_bounces(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """A session that only saw one page is a bounce."""
        record_all(event_log, view("s1", "/", at(10, 0)))
        assert engine.overview(engine.resolve("today")).bounce_rate == 100.0

    def test_multi_page_session_does_not_bounce(
        self, engine: AggregationEngine, event_log: InMemoryEventLog
    ) -> None:
        """A session with two distinct pages is not a bounce."""
        record_all(event_log, view("s1", "/", at(10, 0)), view("s1", "/about", at(10, 1)))
        assert engine.overview(engine.resolve("today")).bounce_rate == 0.0

    def test_repeat_views_of_one_page_still_bounce(
        self, engine: AggregationEngine, event_log: InMemoryEventLog
    ) -> None:
        """Reloading the same page stays a bounce."""
        record_all(event_log, view("s1", "/", at(10, 0)), view("s1", "/", at(10, 5)))
        assert engine.overview(engine.resolve("today")).bounce_rate == 100.0

    def test_session_split_by_inactivity(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Gaps over the timeout start a new visit segment."""
        record_all(
            event_log,
            view("s1", "/", at(10, 0)),
            view("s1", "/about", at(10, 10)),
            duration("s1", "/about", 60, at(10, 11)),
            view("s1", "/", at(11, 0)),
        )

        # 10:00 -> 10:11 is one segment; the 11:00 view starts another of length 0
        assert engine.overview(engine.resolve("today")).avg_session_duration == 660.0

    def test_sessions_counted_in_window(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Distinct sessions with any activity in the window are visitors."""
        record_all(
            event_log,
            view("s1", "/", at(9, 0)),
            view("s1", "/about", at(9, 1)),
            view("s2", "/", at(0, 0, day=9)),
            view("s3", "/", at(23, 59, day=8)),
            interaction("s4", InteractionType.BUTTON_CLICK, at(8, 0, day=12)),
        )

        overview = engine.overview(engine.resolve("last_7_days"))

        assert overview.total_visitors == 3
        assert overview.total_page_views == 3

    def test_visitor_growth(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Growth compares with the preceding window."""
        record_all(
            event_log,
            view("old", "/", at(10, 0, day=14)),
            view("a", "/", at(10, 0)),
            view("b", "/", at(11, 0)),
        )

        assert engine.overview(engine.resolve("today")).visitor_growth == 100.0

    def test_recompute_is_identical(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Recomputing with no new events gives the same aggregate."""
        record_all(
            event_log,
            view("s1", "/", at(10, 0), referer="https://www.google.com/"),
            duration("s1", "/", 12, at(10, 0, 12)),
            interaction("s2", InteractionType.DOWNLOAD, at(10, 30), element="cv.pdf"),
        )
        window = engine.resolve("today")

        assert engine.comprehensive(window) == engine.comprehensive(window)


# --- Breakdowns ---


class TestBreakdowns:
    """Test device, browser, OS and traffic source facets."""

    def test_device_breakdown(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Each session counts once by its first user agent."""
        record_all(
            event_log,
            view("s1", "/", at(10, 0), user_agent=CHROME_WINDOWS),
            view("s1", "/about", at(10, 1), user_agent=SAFARI_IPHONE),
            view("s2", "/", at(10, 0), user_agent=SAFARI_IPHONE),
            view("s3", "/", at(10, 0)),
        )
        window = engine.resolve("today")

        devices = engine.device_breakdown(window)
        assert [(d.name, d.visitors, d.percentage) for d in devices] == [
            ("Desktop", 1, 33.33),
            ("Mobile", 1, 33.33),
            ("Unknown", 1, 33.33),
        ]
        assert [b.name for b in engine.browser_stats(window)] == ["Chrome", "Safari", "Unknown"]
        assert [o.name for o in engine.os_stats(window)] == ["Unknown", "Windows", "iOS"]

    def test_traffic_sources(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Sessions are attributed by the referer of their first view."""
        record_all(
            event_log,
            view("s1", "/", at(10, 0), referer="https://www.google.com/search?q=x"),
            view("s1", "/about", at(10, 5), referer="https://news.ycombinator.com/"),
            view("s2", "/", at(10, 0), referer="https://www.google.com/"),
            view("s3", "/", at(10, 0)),
            view("s4", "/", at(10, 0), referer="https://news.ycombinator.com/item?id=1"),
        )

        sources = engine.traffic_sources(engine.resolve("today"))

        assert [(s.source, s.name, s.visitors) for s in sources] == [
            (TrafficSource.SEARCH.value, "Google", 2),
            (TrafficSource.DIRECT.value, "Direct", 1),
            (TrafficSource.REFERRAL.value, "ycombinator.com", 1),
        ]
        assert sum(s.percentage for s in sources) == 100.0

    def test_interaction_only_session_is_direct(
        self, engine: AggregationEngine, event_log: InMemoryEventLog
    ) -> None:
        """A session with no views has no referer."""
        record_all(event_log, interaction("s1", InteractionType.BUTTON_CLICK, at(10, 0)))

        sources = engine.traffic_sources(engine.resolve("today"))

        assert [(s.name, s.percentage) for s in sources] == [("Direct", 100.0)]


# --- Pages ---


class TestTopPages:
    """Test page performance."""

    def test_per_page_bounce(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Pages seen only by single-page sessions bounce fully."""
        record_all(
            event_log,
            view("s1", "/contact", at(10, 0)),
            view("s2", "/", at(10, 0)),
            view("s2", "/about", at(10, 1)),
        )

        pages = {p.path: p for p in engine.top_pages(engine.resolve("today"))}

        assert pages["/contact"].bounce_rate == 100.0
        assert pages["/about"].bounce_rate == 0.0
        assert pages["/"].bounce_rate == 0.0

    def test_avg_time_over_views_with_duration(
        self, engine: AggregationEngine, event_log: InMemoryEventLog
    ) -> None:
        """Views that never reported a duration do not dilute the average."""
        first = view("s1", "/", at(10, 0))
        record_all(
            event_log,
            first,
            duration("s1", "/", 30, at(10, 0, 30)),
            view("s2", "/", at(10, 0)),
            view("s3", "/", at(10, 0)),
            duration("s3", "/", 10, at(10, 0, 10)),
        )

        (page,) = engine.top_pages(engine.resolve("today"))

        assert page.page_views == 3
        assert page.avg_time_on_page == 20.0

    def test_ranked_and_limited(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Pages are ranked by views and cut at the limit."""
        record_all(
            event_log,
            view("s1", "/b", at(10, 0)),
            view("s2", "/b", at(10, 0)),
            view("s3", "/a", at(10, 0)),
            view("s4", "/c", at(10, 0)),
        )

        pages = engine.top_pages(engine.resolve("today"), limit=2)

        assert [p.path for p in pages] == ["/b", "/a"]

    def test_project_engagement(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Only project detail pages are reported."""
        record_all(
            event_log,
            view("s1", "/projects/alpha", at(10, 0)),
            duration("s1", "/projects/alpha", 30, at(10, 0, 30)),
            view("s2", "/projects/alpha", at(10, 0)),
            view("s2", "/projects/beta", at(10, 2)),
            view("s3", "/about", at(10, 0)),
        )

        items = engine.project_engagement(engine.resolve("today"))

        assert [(p.path, p.views, p.avg_time) for p in items] == [
            ("/projects/alpha", 2, 30.0),
            ("/projects/beta", 1, 0.0),
        ]

    def test_custom_project_prefix(self, event_log: InMemoryEventLog) -> None:
        """The project prefix is configurable."""
        engine = AggregationEngine(
            event_log,
            time_port=FixedClock(NOW),
            config=AggregateConfig(project_path_prefix="/work/"),
        )
        record_all(event_log, view("s1", "/work/x", at(10, 0)), view("s1", "/projects/y", at(10, 1)))

        assert [p.path for p in engine.project_engagement(engine.resolve("today"))] == ["/work/x"]


# --- Counters ---


class TestCounters:
    """Test CV downloads and contact submissions."""

    def test_cv_downloads(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Only download interactions that look like a CV count."""
        record_all(
            event_log,
            interaction("s1", InteractionType.DOWNLOAD, at(10, 0), element="Resume.PDF"),
            interaction("s2", InteractionType.DOWNLOAD, at(10, 0), element="cv-button", value="latest"),
            interaction("s3", InteractionType.DOWNLOAD, at(10, 0), element="logo.png"),
            interaction("s4", InteractionType.BUTTON_CLICK, at(10, 0), element="cv"),
        )

        assert engine.cv_downloads(engine.resolve("today")) == 2

    def test_contact_submissions(self, engine: AggregationEngine, contacts: InMemoryContactSource) -> None:
        """Contact submissions are counted inside the window only."""
        contacts.add(at(9, 0))
        contacts.add(at(23, 59))
        contacts.add(at(10, 0, day=14))

        assert engine.contact_submissions(engine.resolve("today")) == 2
        assert engine.comprehensive(engine.resolve("today")).contact_submissions == 2


# --- Growth Series ---


class TestTrafficGrowth:
    """Test the zero-filled traffic series."""

    def test_daily_series_zero_filled(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Every day of the window has a point."""
        record_all(
            event_log,
            view("s1", "/", at(10, 0, day=10)),
            interaction("s2", InteractionType.BUTTON_CLICK, at(11, 0, day=10)),
        )

        points = engine.traffic_growth(engine.resolve("last_7_days"))

        assert [p.date for p in points] == [f"2024-06-{d:02d}" for d in range(9, 16)]
        by_date = {p.date: p for p in points}
        assert (by_date["2024-06-10"].visitors, by_date["2024-06-10"].page_views) == (2, 1)
        assert by_date["2024-06-11"].visitors == 0

    def test_weekly_buckets_start_monday(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Weekly keys are the Monday of each ISO week."""
        record_all(event_log, view("s1", "/", at(10, 0, day=9)), view("s2", "/", at(10, 0, day=12)))

        points = engine.traffic_growth(engine.resolve("last_7_days"), group_by="week")

        assert [(p.date, p.visitors) for p in points] == [("2024-06-03", 1), ("2024-06-10", 1)]

    def test_monthly_buckets(self, engine: AggregationEngine) -> None:
        """Monthly keys are YYYY-MM."""
        points = engine.traffic_growth(engine.resolve("last_30_days"), group_by="month")
        assert [p.date for p in points] == ["2024-05", "2024-06"]

    def test_comprehensive_uses_daily_series(self, engine: AggregationEngine) -> None:
        """The full aggregate carries one point per day."""
        aggregate = engine.comprehensive(engine.resolve("last_30_days"))
        assert len(aggregate.traffic_growth) == 30


# --- Failures ---


class TestFailures:
    """Test store failures."""

    def test_read_failure_raises_query_error(self) -> None:
        """An unreadable log surfaces as AnalyticsQueryError."""
        engine = AggregationEngine(FailingEventLog(), time_port=FixedClock(NOW))

        with pytest.raises(AnalyticsQueryError):
            engine.comprehensive(engine.resolve("today"))

    def test_window_excludes_end(self, engine: AggregationEngine, event_log: InMemoryEventLog) -> None:
        """Events at the window end belong to the next window."""
        record_all(event_log, view("s1", "/", at(0, 0, day=15)))
        yesterday = engine.resolve("yesterday")

        assert yesterday.end == at(0, 0, day=15)
        assert engine.overview(yesterday).total_visitors == 0
        assert yesterday.length == timedelta(days=1)
