"""
Wire schemas for analytics responses (camelCase keys).

Shared by the REST routes and the WebSocket channel so both carry the same
aggregate shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from sitepulse.components.analytics import AnalyticsAggregate
from sitepulse.components.realtime import LiveActivity


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PeriodSchema(WireModel):
    type: str
    start: datetime
    end: datetime


class OverviewSchema(WireModel):
    total_visitors: int
    total_page_views: int
    avg_session_duration: float
    bounce_rate: float
    visitor_growth: float


class TrafficPointSchema(WireModel):
    date: str
    visitors: int
    page_views: int


class BreakdownSchema(WireModel):
    name: str
    visitors: int
    percentage: float


class TrafficSourceSchema(WireModel):
    source: str
    name: str
    visitors: int
    percentage: float


class TopPageSchema(WireModel):
    path: str
    page_views: int
    avg_time_on_page: float
    bounce_rate: float


class ProjectEngagementSchema(WireModel):
    path: str
    views: int
    avg_time: float


class AnalyticsAggregateResponse(WireModel):
    """Full dashboard aggregate."""

    period: PeriodSchema
    overview: OverviewSchema
    traffic_growth: list[TrafficPointSchema]
    device_breakdown: list[BreakdownSchema]
    browser_stats: list[BreakdownSchema]
    os_stats: list[BreakdownSchema]
    traffic_sources: list[TrafficSourceSchema]
    top_pages: list[TopPageSchema]
    contact_submissions: int
    cv_downloads: int
    project_engagement: list[ProjectEngagementSchema]

    @classmethod
    def from_aggregate(cls, aggregate: AnalyticsAggregate) -> AnalyticsAggregateResponse:
        return cls(
            period=PeriodSchema(
                type=aggregate.period.period.value,
                start=aggregate.period.start,
                end=aggregate.period.end,
            ),
            overview=OverviewSchema.model_validate(aggregate.overview),
            traffic_growth=[TrafficPointSchema.model_validate(p) for p in aggregate.traffic_growth],
            device_breakdown=[BreakdownSchema.model_validate(b) for b in aggregate.device_breakdown],
            browser_stats=[BreakdownSchema.model_validate(b) for b in aggregate.browser_stats],
            os_stats=[BreakdownSchema.model_validate(b) for b in aggregate.os_stats],
            traffic_sources=[TrafficSourceSchema.model_validate(s) for s in aggregate.traffic_sources],
            top_pages=[TopPageSchema.model_validate(p) for p in aggregate.top_pages],
            contact_submissions=aggregate.contact_submissions,
            cv_downloads=aggregate.cv_downloads,
            project_engagement=[
                ProjectEngagementSchema.model_validate(p) for p in aggregate.project_engagement
            ],
        )


def aggregate_payload(aggregate: AnalyticsAggregate) -> dict[str, Any]:
    """JSON-ready camelCase aggregate."""
    return AnalyticsAggregateResponse.from_aggregate(aggregate).model_dump(mode="json", by_alias=True)


class CountResponse(BaseModel):
    count: int


class LiveResponse(WireModel):
    """Live count and recent activity, newest first."""

    count: int
    recent_activity: list[LiveActivity]


class TrackResponse(BaseModel):
    success: bool = True
    tracked: bool


class ErrorResponse(BaseModel):
    success: bool = False
    errors: list[dict[str, Any]]
