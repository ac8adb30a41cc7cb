"""
Analytics component - ingestion and aggregation entry points.

Invariants:
- Event records are append-only; nothing here updates or deletes
- Recorded durations are whole seconds >= 1
- Aggregates are recomputed from a log snapshot on every call
"""

from __future__ import annotations

from sitepulse.core.services.analytics_attrib import AttributionConfig
from sitepulse.rules.models import AnalyticsRules

from ._aggregate import AggregateConfig, AggregationEngine
from ._impl import AnalyticsIngestionService, IngestionConfig
from .models import (
    AnalyticsAggregate,
    IngestOutput,
    TimePeriod,
    TrackInteractionInput,
    TrackPageViewInput,
)
from .ports import (
    ActivityPublisherPort,
    ContactSubmissionPort,
    EventLogPort,
    RateLimiterPort,
    TimePort,
)


def build_ingestion_config(rules: AnalyticsRules | None) -> IngestionConfig:
    """Build ingestion config from the analytics rules section."""
    if rules is None:
        return IngestionConfig()

    ingestion = rules.ingestion
    return IngestionConfig(
        enabled=ingestion.enabled,
        excluded_path_prefixes=tuple(ingestion.excluded_path_prefixes),
        min_duration_seconds=ingestion.min_duration_seconds,
        rate_limit_window_seconds=ingestion.rate_limit.window_seconds,
        rate_limit_max_requests=ingestion.rate_limit.max_requests,
    )


def build_aggregate_config(rules: AnalyticsRules | None) -> AggregateConfig:
    """Build aggregation config from the analytics rules section."""
    if rules is None:
        return AggregateConfig()

    aggregation = rules.aggregation
    return AggregateConfig(
        session_timeout_minutes=aggregation.session_timeout_minutes,
        top_pages_limit=aggregation.top_pages_limit,
        project_path_prefix=aggregation.project_path_prefix,
        cv_download_patterns=tuple(p.lower() for p in aggregation.cv_download_patterns),
        attribution=AttributionConfig(
            internal_domains=tuple(d.lower() for d in rules.attribution.internal_domains),
        ),
    )


# --- Component Entry Points ---


def run_track_page_view(
    inp: TrackPageViewInput,
    *,
    event_log: EventLogPort,
    publisher: ActivityPublisherPort | None = None,
    rate_limiter: RateLimiterPort | None = None,
    time_port: TimePort | None = None,
    rules: AnalyticsRules | None = None,
) -> IngestOutput:
    """
    Record a page view or a duration update.

    Args:
        inp: Raw submission plus request user agent and client key.
        event_log: Event log port.
        publisher: Optional real-time publisher.
        rate_limiter: Optional rate limiter port.
        time_port: Optional time port.
        rules: Optional analytics rules section.

    Returns:
        IngestOutput with the stored record or rejection errors.
    """
    service = AnalyticsIngestionService(
        event_log=event_log,
        publisher=publisher,
        rate_limiter=rate_limiter,
        time_port=time_port,
        config=build_ingestion_config(rules),
    )
    return service.track_page_view(inp)


def run_track_interaction(
    inp: TrackInteractionInput,
    *,
    event_log: EventLogPort,
    publisher: ActivityPublisherPort | None = None,
    rate_limiter: RateLimiterPort | None = None,
    time_port: TimePort | None = None,
    rules: AnalyticsRules | None = None,
) -> IngestOutput:
    """Record an interaction."""
    service = AnalyticsIngestionService(
        event_log=event_log,
        publisher=publisher,
        rate_limiter=rate_limiter,
        time_port=time_port,
        config=build_ingestion_config(rules),
    )
    return service.track_interaction(inp)


def run_comprehensive(
    period: str | TimePeriod | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    *,
    event_log: EventLogPort,
    contacts: ContactSubmissionPort | None = None,
    time_port: TimePort | None = None,
    rules: AnalyticsRules | None = None,
) -> AnalyticsAggregate:
    """
    Compute the full aggregate for a period.

    Raises:
        InvalidPeriodError: Unknown period or malformed custom range.
        AnalyticsQueryError: The event log or contacts source failed.
    """
    engine = AggregationEngine(
        event_log=event_log,
        contacts=contacts,
        time_port=time_port,
        config=build_aggregate_config(rules),
    )
    return engine.comprehensive(engine.resolve(period, start_date, end_date))
