"""
Analytics query API.

Comprehensive aggregate, single facets and the live snapshot. Every
endpoint recomputes from the event log; nothing is cached.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Literal, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, status

from sitepulse.api.deps import AnalyticsContext, get_analytics_context
from sitepulse.api.schemas import (
    AnalyticsAggregateResponse,
    BreakdownSchema,
    CountResponse,
    LiveResponse,
    OverviewSchema,
    ProjectEngagementSchema,
    TopPageSchema,
    TrafficPointSchema,
    TrafficSourceSchema,
)
from sitepulse.components.analytics import (
    AnalyticsQueryError,
    InvalidPeriodError,
    PeriodRange,
)

router = APIRouter()

T = TypeVar("T")

PeriodParam = Annotated[str | None, Query(description="today, yesterday, last_7_days, ... or custom")]
StartParam = Annotated[str | None, Query(alias="startDate", description="Custom range start (ISO 8601)")]
EndParam = Annotated[str | None, Query(alias="endDate", description="Custom range end (ISO 8601)")]


# --- Helper Functions ---


def resolve_window(
    context: AnalyticsContext,
    period: str | None,
    start_date: str | None,
    end_date: str | None,
) -> PeriodRange:
    """Resolve query parameters to a window, 400 on invalid input."""
    try:
        return context.engine.resolve(period, start_date, end_date)
    except InvalidPeriodError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from None


def run_query(fn: Callable[..., T], *args: object) -> T:
    """Run an engine query, 503 when the log cannot be read."""
    try:
        return fn(*args)
    except AnalyticsQueryError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e


# --- Routes ---


@router.get("/comprehensive", response_model=AnalyticsAggregateResponse)
def get_comprehensive(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> AnalyticsAggregateResponse:
    """Full dashboard aggregate for a period."""
    window = resolve_window(context, period, start_date, end_date)
    aggregate = run_query(context.engine.comprehensive, window)
    return AnalyticsAggregateResponse.from_aggregate(aggregate)


@router.get("/overview", response_model=OverviewSchema)
def get_overview(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> OverviewSchema:
    window = resolve_window(context, period, start_date, end_date)
    return OverviewSchema.model_validate(run_query(context.engine.overview, window))


@router.get("/traffic-growth", response_model=list[TrafficPointSchema])
def get_traffic_growth(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    group_by: Literal["day", "week", "month"] = Query("day", alias="groupBy"),
    context: AnalyticsContext = Depends(get_analytics_context),
) -> list[TrafficPointSchema]:
    """Zero-filled visitors and page views per day, week or month."""
    window = resolve_window(context, period, start_date, end_date)
    points = run_query(context.engine.traffic_growth, window, group_by)
    return [TrafficPointSchema.model_validate(p) for p in points]


@router.get("/devices", response_model=list[BreakdownSchema])
def get_devices(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> list[BreakdownSchema]:
    window = resolve_window(context, period, start_date, end_date)
    return [BreakdownSchema.model_validate(b) for b in run_query(context.engine.device_breakdown, window)]


@router.get("/browsers", response_model=list[BreakdownSchema])
def get_browsers(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> list[BreakdownSchema]:
    window = resolve_window(context, period, start_date, end_date)
    return [BreakdownSchema.model_validate(b) for b in run_query(context.engine.browser_stats, window)]


@router.get("/operating-systems", response_model=list[BreakdownSchema])
def get_operating_systems(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> list[BreakdownSchema]:
    window = resolve_window(context, period, start_date, end_date)
    return [BreakdownSchema.model_validate(b) for b in run_query(context.engine.os_stats, window)]


@router.get("/traffic-sources", response_model=list[TrafficSourceSchema])
def get_traffic_sources(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> list[TrafficSourceSchema]:
    window = resolve_window(context, period, start_date, end_date)
    sources = run_query(context.engine.traffic_sources, window)
    return [TrafficSourceSchema.model_validate(s) for s in sources]


@router.get("/top-pages", response_model=list[TopPageSchema])
def get_top_pages(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    limit: int = Query(10, ge=1, le=100, description="Number of results"),
    context: AnalyticsContext = Depends(get_analytics_context),
) -> list[TopPageSchema]:
    """Pages ranked by views with average time and bounce rate."""
    window = resolve_window(context, period, start_date, end_date)
    pages = run_query(context.engine.top_pages, window, limit)
    return [TopPageSchema.model_validate(p) for p in pages]


@router.get("/contact-submissions", response_model=CountResponse)
def get_contact_submissions(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> CountResponse:
    window = resolve_window(context, period, start_date, end_date)
    return CountResponse(count=run_query(context.engine.contact_submissions, window))


@router.get("/project-engagement", response_model=list[ProjectEngagementSchema])
def get_project_engagement(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> list[ProjectEngagementSchema]:
    window = resolve_window(context, period, start_date, end_date)
    items = run_query(context.engine.project_engagement, window)
    return [ProjectEngagementSchema.model_validate(i) for i in items]


@router.get("/cv-downloads", response_model=CountResponse)
def get_cv_downloads(
    period: PeriodParam = None,
    start_date: StartParam = None,
    end_date: EndParam = None,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> CountResponse:
    window = resolve_window(context, period, start_date, end_date)
    return CountResponse(count=run_query(context.engine.cv_downloads, window))


@router.get("/live", response_model=LiveResponse)
def get_live(
    context: AnalyticsContext = Depends(get_analytics_context),
) -> LiveResponse:
    """Live visitor count and the recent activity buffer, newest first."""
    return LiveResponse(
        count=context.hub.live_count(),
        recent_activity=context.hub.recent_activity(),
    )
