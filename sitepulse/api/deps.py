from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from fastapi import Request

from sitepulse.adapters.clock import SystemClock
from sitepulse.adapters.sqlite.event_log import (
    InMemoryContactSource,
    SQLiteContactSource,
    SQLiteEventLog,
)
from sitepulse.adapters.sqlite.migrator import SQLiteMigrator
from sitepulse.components.analytics import (
    AggregationEngine,
    AnalyticsIngestionService,
    ContactSubmissionPort,
    EventLogPort,
    InMemoryEventLog,
    InMemoryRateLimiter,
    TimePort,
    build_aggregate_config,
    build_ingestion_config,
)
from sitepulse.components.realtime import AnalyticsHub, HubConfig
from sitepulse.rules.loader import load_rules
from sitepulse.rules.models import AnalyticsRules, Rules


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("SITEPULSE_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "sitepulse.db")
        self.rules_path = Path(os.environ.get("SITEPULSE_RULES_PATH", str(self.base_dir / "rules.yaml")))
        self.event_log_backend = os.environ.get("SITEPULSE_EVENT_LOG", "sqlite").lower()


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> Rules:
    return load_rules(get_settings().rules_path)


# --- Analytics Context ---
@dataclass
class AnalyticsContext:
    """Long-lived analytics collaborators shared by all routes."""

    event_log: EventLogPort
    contacts: ContactSubmissionPort
    clock: TimePort
    hub: AnalyticsHub
    ingestion: AnalyticsIngestionService
    engine: AggregationEngine
    rules: AnalyticsRules | None = None

    @classmethod
    def create(
        cls,
        event_log: EventLogPort,
        contacts: ContactSubmissionPort | None = None,
        clock: TimePort | None = None,
        rules: AnalyticsRules | None = None,
    ) -> AnalyticsContext:
        clock = clock or SystemClock()
        contacts = contacts or InMemoryContactSource()

        hub_config = HubConfig()
        if rules is not None:
            hub_config = HubConfig(
                live_window_seconds=rules.realtime.live_window_seconds,
                live_count_interval_seconds=rules.realtime.live_count_interval_seconds,
                activity_buffer_size=rules.realtime.activity_buffer_size,
                connection_queue_size=rules.realtime.connection_queue_size,
            )
        hub = AnalyticsHub(time_port=clock, config=hub_config)

        ingestion = AnalyticsIngestionService(
            event_log=event_log,
            publisher=hub,
            rate_limiter=InMemoryRateLimiter(clock),
            time_port=clock,
            config=build_ingestion_config(rules),
        )
        engine = AggregationEngine(
            event_log=event_log,
            contacts=contacts,
            time_port=clock,
            config=build_aggregate_config(rules),
        )

        return cls(
            event_log=event_log,
            contacts=contacts,
            clock=clock,
            hub=hub,
            ingestion=ingestion,
            engine=engine,
            rules=rules,
        )

    @classmethod
    def from_settings(cls, settings: Settings, rules: Rules) -> AnalyticsContext:
        event_log: EventLogPort
        contacts: ContactSubmissionPort
        if settings.event_log_backend == "memory":
            event_log = InMemoryEventLog()
            contacts = InMemoryContactSource()
        elif settings.event_log_backend == "sqlite":
            SQLiteMigrator(settings.db_path).run_migrations()
            event_log = SQLiteEventLog(settings.db_path)
            contacts = SQLiteContactSource(settings.db_path)
        else:
            raise ValueError(
                f"Unknown SITEPULSE_EVENT_LOG backend: {settings.event_log_backend}. "
                "Must be one of: sqlite, memory"
            )
        return cls.create(event_log=event_log, contacts=contacts, rules=rules.analytics)


# Context singleton, built on first use or at startup
_context_instance: AnalyticsContext | None = None


def get_analytics_context() -> AnalyticsContext:
    """Get analytics context singleton."""
    global _context_instance
    if _context_instance is None:
        _context_instance = AnalyticsContext.from_settings(get_settings(), get_rules())
    return _context_instance


def set_analytics_context(context: AnalyticsContext | None) -> None:
    """Replace the context singleton (startup and tests)."""
    global _context_instance
    _context_instance = context


def get_client_key(request: Request) -> str:
    """Extract client key from request for rate limiting."""
    # Use X-Forwarded-For if behind proxy, otherwise client host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
