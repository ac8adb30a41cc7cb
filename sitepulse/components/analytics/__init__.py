"""
Analytics component - event ingestion and aggregation.
"""

from sitepulse.core.services.analytics_attrib import (
    Attribution,
    AttributionConfig,
    AttributionService,
    ReferrerInfo,
    TrafficSource,
    classify_traffic_source,
    create_attribution_service,
    parse_domain,
    parse_referrer,
)
from sitepulse.core.services.analytics_useragent import (
    DeviceInfo,
    UserAgentConfig,
    parse_user_agent,
)

from ._aggregate import (
    AggregateConfig,
    AggregationEngine,
    AnalyticsQueryError,
    compute_aggregate,
    create_aggregation_engine,
    growth,
    join_durations,
    percentage,
)
from ._impl import (
    AnalyticsIngestionService,
    DefaultTimePort,
    IngestionConfig,
    IngestionError,
    InMemoryEventLog,
    InMemoryRateLimiter,
    create_analytics_ingestion_service,
    is_excluded_path,
    normalize_duration,
    validate_interaction_type,
)
from ._periods import (
    DEFAULT_PERIOD,
    InvalidPeriodError,
    parse_period,
    previous_range,
    resolve_period,
)
from .component import (
    build_aggregate_config,
    build_ingestion_config,
    run_comprehensive,
    run_track_interaction,
    run_track_page_view,
)
from .models import (
    AnalyticsAggregate,
    BreakdownItem,
    DurationUpdate,
    EventRecord,
    EventSnapshot,
    GroupBy,
    IngestOutput,
    InteractionEvent,
    InteractionType,
    OverviewStats,
    PagePerformance,
    PageViewEvent,
    PeriodRange,
    ProjectEngagementItem,
    TimePeriod,
    TrackInteractionInput,
    TrackPageViewInput,
    TrafficPoint,
    TrafficSourceItem,
)
from .ports import (
    ActivityPublisherPort,
    ContactSubmissionPort,
    EventLogPort,
    RateLimiterPort,
    TimePort,
)

__all__ = [
    # Services
    "AnalyticsIngestionService",
    "AggregationEngine",
    "AttributionService",
    "create_analytics_ingestion_service",
    "create_aggregation_engine",
    "create_attribution_service",
    # Config
    "AggregateConfig",
    "AttributionConfig",
    "IngestionConfig",
    "UserAgentConfig",
    "build_aggregate_config",
    "build_ingestion_config",
    # Errors
    "AnalyticsQueryError",
    "IngestionError",
    "InvalidPeriodError",
    # Adapters
    "DefaultTimePort",
    "InMemoryEventLog",
    "InMemoryRateLimiter",
    # Entry points
    "run_comprehensive",
    "run_track_interaction",
    "run_track_page_view",
    # Helpers
    "DEFAULT_PERIOD",
    "classify_traffic_source",
    "compute_aggregate",
    "growth",
    "is_excluded_path",
    "join_durations",
    "normalize_duration",
    "parse_domain",
    "parse_period",
    "parse_referrer",
    "parse_user_agent",
    "percentage",
    "previous_range",
    "resolve_period",
    "validate_interaction_type",
    # Models
    "AnalyticsAggregate",
    "Attribution",
    "BreakdownItem",
    "DeviceInfo",
    "DurationUpdate",
    "EventRecord",
    "EventSnapshot",
    "GroupBy",
    "IngestOutput",
    "InteractionEvent",
    "InteractionType",
    "OverviewStats",
    "PagePerformance",
    "PageViewEvent",
    "PeriodRange",
    "ProjectEngagementItem",
    "ReferrerInfo",
    "TimePeriod",
    "TrackInteractionInput",
    "TrackPageViewInput",
    "TrafficPoint",
    "TrafficSource",
    "TrafficSourceItem",
    # Ports
    "ActivityPublisherPort",
    "ContactSubmissionPort",
    "EventLogPort",
    "RateLimiterPort",
    "TimePort",
]
