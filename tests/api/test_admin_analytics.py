"""
Tests for the analytics query API.

Covers the comprehensive aggregate, single facets, period validation and
store failures.
"""

from __future__ import annotations

from datetime import datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from sitepulse.adapters.clock import FixedClock
from sitepulse.adapters.sqlite.event_log import InMemoryContactSource
from sitepulse.api.deps import AnalyticsContext, get_analytics_context
from sitepulse.api.routes import admin_analytics, analytics_ingest
from sitepulse.components.analytics import EventSnapshot

SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)

# --- Test Setup ---


class FailingEventLog:
    """Event log that cannot be read."""

    def append(self, record: object) -> None:
        pass

    def snapshot(self, start: datetime, end: datetime) -> EventSnapshot:
        raise OSError("database is locked")


def build_app(context: AnalyticsContext) -> FastAPI:
    app = FastAPI()
    app.include_router(analytics_ingest.router, prefix="/analytics")
    app.include_router(admin_analytics.router, prefix="/analytics")
    app.dependency_overrides[get_analytics_context] = lambda: context
    return app


@pytest.fixture
def client(analytics_ctx: AnalyticsContext) -> TestClient:
    """Test client over the ingestion and query routers."""
    return TestClient(build_app(analytics_ctx))


# --- Helper Functions ---


def track(client: TestClient, session_id: str, path: str, **extra: object) -> None:
    response = client.post(
        "/analytics/track-page-view",
        json={"path": path, "sessionId": session_id, **extra},
        headers={"User-Agent": SAFARI_IPHONE},
    )
    assert response.status_code == 200


# --- Comprehensive ---


class TestComprehensive:
    """Test GET /analytics/comprehensive."""

    def test_empty_log(self, client: TestClient) -> None:
        """No events still yields a well-formed zero aggregate."""
        response = client.get("/analytics/comprehensive")

        assert response.status_code == 200
        data = response.json()
        assert data["period"]["type"] == "last_30_days"
        assert data["overview"] == {
            "totalVisitors": 0,
            "totalPageViews": 0,
            "avgSessionDuration": 0.0,
            "bounceRate": 0.0,
            "visitorGrowth": 0.0,
        }
        assert len(data["trafficGrowth"]) == 30
        assert data["trafficGrowth"][0] == {"date": "2024-05-17", "visitors": 0, "pageViews": 0}
        for key in (
            "deviceBreakdown",
            "browserStats",
            "osStats",
            "trafficSources",
            "topPages",
            "projectEngagement",
        ):
            assert data[key] == []
        assert data["contactSubmissions"] == 0
        assert data["cvDownloads"] == 0

    def test_view_and_duration_today(self, client: TestClient) -> None:
        """A view plus a 45 s duration averages 45 s today."""
        track(client, "s1", "/")
        track(client, "s1", "/", duration=45)

        data = client.get("/analytics/comprehensive", params={"period": "today"}).json()

        assert data["overview"]["totalVisitors"] == 1
        assert data["overview"]["totalPageViews"] == 1
        assert data["overview"]["avgSessionDuration"] == 45.0
        assert data["overview"]["bounceRate"] == 100.0
        assert data["topPages"] == [
            {"path": "/", "pageViews": 1, "avgTimeOnPage": 45.0, "bounceRate": 100.0}
        ]
        assert data["deviceBreakdown"] == [{"name": "Mobile", "visitors": 1, "percentage": 100.0}]

    def test_recompute_is_stable(self, client: TestClient) -> None:
        """Two reads with no new events are identical."""
        track(client, "s1", "/", referer="https://www.linkedin.com/")
        track(client, "s2", "/projects/alpha")

        first = client.get("/analytics/comprehensive", params={"period": "last_7_days"}).json()
        second = client.get("/analytics/comprehensive", params={"period": "last_7_days"}).json()

        assert first == second
        assert {s["name"] for s in first["trafficSources"]} == {"LinkedIn", "Direct"}

    def test_custom_period(self, client: TestClient) -> None:
        """Custom ranges take startDate and endDate."""
        response = client.get(
            "/analytics/comprehensive",
            params={"period": "custom", "startDate": "2024-06-10", "endDate": "2024-06-15"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["period"]["type"] == "custom"
        assert len(data["trafficGrowth"]) == 6

    def test_invalid_period(self, client: TestClient) -> None:
        """Unknown period is a 400 with the allowed values."""
        response = client.get("/analytics/comprehensive", params={"period": "fortnight"})

        assert response.status_code == 400
        assert "Invalid period" in response.json()["detail"]

    def test_custom_without_dates(self, client: TestClient) -> None:
        """Custom period needs both dates."""
        response = client.get("/analytics/comprehensive", params={"period": "custom"})

        assert response.status_code == 400
        assert "required" in response.json()["detail"]

    @pytest.mark.parametrize(
        ("endpoint", "start", "end"),
        [
            ("/analytics/comprehensive", "2024-01-01", "9999-12-31"),
            ("/analytics/overview", "0001-01-01", "2024-01-01"),
        ],
    )
    def test_out_of_range_dates(self, client: TestClient, endpoint: str, start: str, end: str) -> None:
        """Dates at the calendar edges are a 400, not a server error."""
        response = client.get(
            endpoint, params={"period": "custom", "startDate": start, "endDate": end}
        )

        assert response.status_code == 400

    def test_store_failure_is_503(self, clock: FixedClock) -> None:
        """An unreadable log is reported as unavailable."""
        context = AnalyticsContext.create(FailingEventLog(), clock=clock)
        client = TestClient(build_app(context))

        response = client.get("/analytics/comprehensive")

        assert response.status_code == 503


# --- Single Facets ---


class TestFacets:
    """Test the single-facet endpoints."""

    def test_overview(self, client: TestClient) -> None:
        """Overview alone matches the aggregate's overview."""
        track(client, "s1", "/")
        track(client, "s1", "/about")

        data = client.get("/analytics/overview", params={"period": "today"}).json()

        assert data["totalVisitors"] == 1
        assert data["bounceRate"] == 0.0

    def test_traffic_growth_grouping(self, client: TestClient) -> None:
        """groupBy selects the bucket size."""
        weekly = client.get(
            "/analytics/traffic-growth", params={"period": "last_7_days", "groupBy": "week"}
        ).json()
        monthly = client.get(
            "/analytics/traffic-growth", params={"period": "last_30_days", "groupBy": "month"}
        ).json()

        assert [p["date"] for p in weekly] == ["2024-06-03", "2024-06-10"]
        assert [p["date"] for p in monthly] == ["2024-05", "2024-06"]

    def test_traffic_growth_bad_grouping(self, client: TestClient) -> None:
        """Unknown groupBy fails validation."""
        response = client.get("/analytics/traffic-growth", params={"groupBy": "hour"})
        assert response.status_code == 422

    def test_breakdowns(self, client: TestClient) -> None:
        """Device, browser and OS endpoints share one session denominator."""
        track(client, "s1", "/")

        for endpoint, name in (
            ("/analytics/devices", "Mobile"),
            ("/analytics/browsers", "Safari"),
            ("/analytics/operating-systems", "iOS"),
        ):
            data = client.get(endpoint, params={"period": "today"}).json()
            assert data == [{"name": name, "visitors": 1, "percentage": 100.0}]

    def test_traffic_sources(self, client: TestClient) -> None:
        """Sources carry the bucket and the display name."""
        track(client, "s1", "/", referer="https://duckduckgo.com/")

        data = client.get("/analytics/traffic-sources", params={"period": "today"}).json()

        assert data == [{"source": "search", "name": "DuckDuckGo", "visitors": 1, "percentage": 100.0}]

    def test_top_pages_limit(self, client: TestClient) -> None:
        """limit caps the number of pages."""
        track(client, "s1", "/")
        track(client, "s2", "/")
        track(client, "s3", "/about")

        data = client.get("/analytics/top-pages", params={"period": "today", "limit": 1}).json()

        assert [p["path"] for p in data] == ["/"]
        assert client.get("/analytics/top-pages", params={"limit": 0}).status_code == 422

    def test_project_engagement(self, client: TestClient) -> None:
        """Project detail pages are reported with views and time."""
        track(client, "s1", "/projects/alpha")
        track(client, "s1", "/projects/alpha", duration=20)

        data = client.get("/analytics/project-engagement", params={"period": "today"}).json()

        assert data == [{"path": "/projects/alpha", "views": 1, "avgTime": 20.0}]

    def test_cv_downloads(self, client: TestClient) -> None:
        """CV downloads are counted from download interactions."""
        client.post(
            "/analytics/track-interaction",
            json={"type": "download", "element": "resume.pdf", "sessionId": "s1"},
        )
        client.post("/analytics/track-interaction", json={"type": "download", "element": "logo.svg"})

        data = client.get("/analytics/cv-downloads", params={"period": "today"}).json()

        assert data == {"count": 1}

    def test_contact_submissions(
        self, client: TestClient, contacts: InMemoryContactSource, clock: FixedClock
    ) -> None:
        """Contact submissions come from the contacts source."""
        contacts.add(clock.now_utc())

        data = client.get("/analytics/contact-submissions", params={"period": "today"}).json()

        assert data == {"count": 1}

    def test_live_snapshot(self, client: TestClient) -> None:
        """The live endpoint reports the count and newest activity first."""
        track(client, "s1", "/")
        track(client, "s1", "/about")

        data = client.get("/analytics/live").json()

        assert data["count"] == 1
        assert [(a["type"], a["page"]) for a in data["recentActivity"]] == [
            ("page_view", "/about"),
            ("visit", "/"),
        ]
        assert data["recentActivity"][0]["userAgent"] == "Safari on iOS"
