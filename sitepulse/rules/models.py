from pydantic import BaseModel, ConfigDict, Field


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class RateLimitWindow(BaseModel):
    window_seconds: int = Field(60, gt=0)
    max_requests: int = Field(600, gt=0)


class IngestionRules(BaseModel):
    enabled: bool = True
    excluded_path_prefixes: list[str] = Field(default_factory=lambda: ["/admin"])
    min_duration_seconds: int = Field(1, ge=1)
    rate_limit: RateLimitWindow = Field(default_factory=RateLimitWindow)


class AggregationRules(BaseModel):
    session_timeout_minutes: int = Field(30, gt=0)
    top_pages_limit: int = Field(10, gt=0)
    project_path_prefix: str = "/projects/"
    cv_download_patterns: list[str] = Field(default_factory=lambda: ["cv", "resume", ".pdf"])


class RealtimeRules(BaseModel):
    live_window_seconds: int = Field(300, gt=0)
    live_count_interval_seconds: float = Field(15, gt=0)
    activity_buffer_size: int = Field(50, gt=0)
    connection_queue_size: int = Field(100, gt=0)


class AttributionRules(BaseModel):
    internal_domains: list[str] = Field(default_factory=lambda: ["localhost"])


class AnalyticsRules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ingestion: IngestionRules
    aggregation: AggregationRules
    realtime: RealtimeRules
    attribution: AttributionRules = Field(default_factory=AttributionRules)


class Rules(BaseModel):
    project: ProjectRules
    analytics: AnalyticsRules
