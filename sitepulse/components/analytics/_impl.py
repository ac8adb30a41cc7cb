"""
AnalyticsIngestionService - page-view and interaction ingestion.

Validates raw tracker submissions, appends records to the event log and
hands each accepted record to the real-time publisher.

Key behaviors:
- Page views require session id and path
- A submission carrying ``duration`` becomes a duration record (rounded,
  values below one second are discarded)
- Interactions default session id to "anonymous" and path to "/"
- Admin paths are accepted but not tracked
- Rate limiting per client key
- Publisher failures never fail ingestion
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from .models import (
    DurationUpdate,
    EventRecord,
    EventSnapshot,
    IngestOutput,
    InteractionEvent,
    InteractionType,
    PageViewEvent,
    TrackInteractionInput,
    TrackPageViewInput,
)
from .ports import ActivityPublisherPort, EventLogPort, RateLimiterPort, TimePort

logger = logging.getLogger(__name__)

ANONYMOUS_SESSION = "anonymous"
DEFAULT_INTERACTION_PATH = "/"


# --- Configuration ---


@dataclass(frozen=True)
class IngestionConfig:
    """Analytics ingestion configuration."""

    enabled: bool = True

    # Rate limiting
    rate_limit_window_seconds: int = 60
    rate_limit_max_requests: int = 600

    # Paths accepted but never recorded
    excluded_path_prefixes: tuple[str, ...] = ("/admin",)

    # Field limits
    max_path_length: int = 2048
    max_session_id_length: int = 128
    max_text_length: int = 1024

    # Durations below this many whole seconds are dropped
    min_duration_seconds: int = 1

    allowed_interaction_types: frozenset[str] = field(
        default_factory=lambda: frozenset(t.value for t in InteractionType),
    )


DEFAULT_CONFIG = IngestionConfig()


# --- Validation Errors ---


@dataclass
class IngestionError:
    """Analytics ingestion error."""

    code: str
    message: str
    field_name: str | None = None


# --- Default Implementations ---


class InMemoryRateLimiter:
    """In-memory sliding window rate limiter."""

    def __init__(self, time_port: TimePort | None = None) -> None:
        self._time = time_port or DefaultTimePort()
        self._requests: dict[str, list[datetime]] = {}
        self._next_sweep = datetime.min.replace(tzinfo=UTC)
        self._lock = threading.Lock()

    def check_rate_limit(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
    ) -> bool:
        """Check if rate limit allows request."""
        cutoff = self._time.now_utc() - timedelta(seconds=window_seconds)

        with self._lock:
            if key not in self._requests:
                return True

            # Clean old entries and count recent
            recent = [t for t in self._requests[key] if t > cutoff]
            if recent:
                self._requests[key] = recent
            else:
                del self._requests[key]
            return len(recent) < max_requests

    def record_request(self, key: str, window_seconds: int) -> None:
        """Record a request and forget clients idle for a whole window."""
        now = self._time.now_utc()
        cutoff = now - timedelta(seconds=window_seconds)
        with self._lock:
            self._requests.setdefault(key, []).append(now)
            if now >= self._next_sweep:
                self._next_sweep = now + timedelta(seconds=window_seconds)
                for stale in [k for k, times in self._requests.items() if times[-1] <= cutoff]:
                    del self._requests[stale]

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._requests)


class InMemoryEventLog:
    """In-memory append-only event log for tests and dev."""

    def __init__(self) -> None:
        self._records: list[EventRecord] = []
        self._lock = threading.Lock()

    def append(self, record: EventRecord) -> None:
        with self._lock:
            self._records.append(record)

    def snapshot(self, start: datetime, end: datetime) -> EventSnapshot:
        """Copy the records in [start, end) under the lock."""
        with self._lock:
            records = [r for r in self._records if start <= r.timestamp < end]

        return EventSnapshot(
            page_views=tuple(r for r in records if isinstance(r, PageViewEvent)),
            durations=tuple(r for r in records if isinstance(r, DurationUpdate)),
            interactions=tuple(r for r in records if isinstance(r, InteractionEvent)),
        )

    def get_all(self) -> list[EventRecord]:
        """Get all stored records (for testing)."""
        with self._lock:
            return list(self._records)


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)


# --- Validation Functions ---


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    text = text.strip()
    return text or None


def validate_required_text(
    value: Any,
    field_name: str,
    max_length: int,
) -> tuple[str | None, list[IngestionError]]:
    """Require a non-blank string no longer than ``max_length``."""
    text = _text(value)
    if text is None:
        return None, [
            IngestionError(
                code=f"{field_name}_required",
                message=f"Field '{field_name}' is required",
                field_name=field_name,
            )
        ]
    if len(text) > max_length:
        return None, [
            IngestionError(
                code="field_too_long",
                message=f"Field '{field_name}' exceeds {max_length} characters",
                field_name=field_name,
            )
        ]
    return text, []


def validate_optional_text(
    value: Any,
    field_name: str,
    max_length: int,
) -> tuple[str | None, list[IngestionError]]:
    """Optional string; blank becomes None."""
    text = _text(value)
    if text is not None and len(text) > max_length:
        return None, [
            IngestionError(
                code="field_too_long",
                message=f"Field '{field_name}' exceeds {max_length} characters",
                field_name=field_name,
            )
        ]
    return text, []


def normalize_duration(
    value: Any,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> tuple[int | None, list[IngestionError]]:
    """
    Round a submitted duration to whole seconds.

    Returns (None, []) when the value is below the minimum and must be
    discarded.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None, [
            IngestionError(
                code="invalid_duration",
                message="Duration must be a number of seconds",
                field_name="duration",
            )
        ]

    try:
        seconds = round(float(value))
    except (ValueError, OverflowError):
        return None, [
            IngestionError(
                code="invalid_duration",
                message="Duration must be a number of seconds",
                field_name="duration",
            )
        ]

    if seconds < config.min_duration_seconds:
        return None, []
    return seconds, []


def validate_interaction_type(
    value: Any,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> tuple[InteractionType | None, list[IngestionError]]:
    """Validate interaction type against the taxonomy."""
    if not value:
        return None, [
            IngestionError(
                code="type_required",
                message="Interaction type is required",
                field_name="type",
            )
        ]

    if value not in config.allowed_interaction_types:
        allowed = ", ".join(sorted(config.allowed_interaction_types))
        return None, [
            IngestionError(
                code="invalid_interaction_type",
                message=f"Interaction type '{value}' is not allowed. Must be one of: {allowed}",
                field_name="type",
            )
        ]

    return InteractionType(value), []


def validate_metadata(value: Any) -> tuple[dict[str, Any] | None, list[IngestionError]]:
    if value is None:
        return None, []
    if not isinstance(value, dict):
        return None, [
            IngestionError(
                code="invalid_metadata",
                message="Metadata must be an object",
                field_name="metadata",
            )
        ]
    return dict(value), []


def is_excluded_path(path: str, config: IngestionConfig = DEFAULT_CONFIG) -> bool:
    """Check whether a path falls under an excluded prefix."""
    for prefix in config.excluded_path_prefixes:
        if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
            return True
    return False


def _new_id() -> str:
    return uuid4().hex


# --- Analytics Ingestion Service ---


class AnalyticsIngestionService:
    """
    Analytics ingestion service.

    Handles validation, rate limiting, storage and live publishing.
    """

    def __init__(
        self,
        event_log: EventLogPort,
        publisher: ActivityPublisherPort | None = None,
        rate_limiter: RateLimiterPort | None = None,
        time_port: TimePort | None = None,
        config: IngestionConfig | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize service."""
        self._log = event_log
        self._publisher = publisher
        self._rate_limiter = rate_limiter or InMemoryRateLimiter()
        self._time = time_port or DefaultTimePort()
        self._config = config or DEFAULT_CONFIG
        self._new_id = id_factory or _new_id

    def check_rate_limit(self, client_key: str) -> bool:
        """Check if client is within rate limit."""
        return self._rate_limiter.check_rate_limit(
            key=client_key,
            max_requests=self._config.rate_limit_max_requests,
            window_seconds=self._config.rate_limit_window_seconds,
        )

    def _admit(self, client_key: str | None) -> list[IngestionError]:
        if not client_key:
            return []
        if not self.check_rate_limit(client_key):
            return [IngestionError(code="rate_limit_exceeded", message="Too many requests")]
        self._rate_limiter.record_request(client_key, self._config.rate_limit_window_seconds)
        return []

    def track_page_view(self, inp: TrackPageViewInput) -> IngestOutput:
        """
        Record a page view or a duration update.

        A submission with ``duration`` is a duration update for the view of
        the same session and path; otherwise it is a new view.
        """
        errors = self._admit(inp.client_key)
        if errors:
            return IngestOutput(accepted=False, errors=errors)

        data = inp.data
        session_id, errs = validate_required_text(
            data.get("sessionId"), "sessionId", self._config.max_session_id_length
        )
        errors.extend(errs)
        path, errs = validate_required_text(data.get("path"), "path", self._config.max_path_length)
        errors.extend(errs)
        referer, errs = validate_optional_text(
            data.get("referer"), "referer", self._config.max_path_length
        )
        errors.extend(errs)

        duration: int | None = None
        has_duration = data.get("duration") is not None
        if has_duration:
            duration, errs = normalize_duration(data["duration"], self._config)
            errors.extend(errs)

        if errors:
            return IngestOutput(accepted=False, errors=errors)

        assert session_id is not None and path is not None

        if not self._config.enabled or is_excluded_path(path, self._config):
            return IngestOutput(accepted=True, tracked=False)

        now = self._time.now_utc()
        record: EventRecord
        if has_duration:
            if duration is None:
                logger.debug("Discarding sub-second duration for %s", path)
                return IngestOutput(accepted=True, tracked=False)
            record = DurationUpdate(
                id=self._new_id(),
                session_id=session_id,
                path=path,
                duration_seconds=duration,
                timestamp=now,
            )
        else:
            record = PageViewEvent(
                id=self._new_id(),
                session_id=session_id,
                path=path,
                timestamp=now,
                referer=referer,
                user_agent=_text(inp.user_agent),
            )

        return self._store(record)

    def track_interaction(self, inp: TrackInteractionInput) -> IngestOutput:
        """Record an interaction."""
        errors = self._admit(inp.client_key)
        if errors:
            return IngestOutput(accepted=False, errors=errors)

        data = inp.data
        kind, errs = validate_interaction_type(data.get("type"), self._config)
        errors.extend(errs)

        session_id, errs = validate_optional_text(
            data.get("sessionId"), "sessionId", self._config.max_session_id_length
        )
        errors.extend(errs)
        path, errs = validate_optional_text(data.get("path"), "path", self._config.max_path_length)
        errors.extend(errs)
        element, errs = validate_optional_text(
            data.get("element"), "element", self._config.max_text_length
        )
        errors.extend(errs)
        value, errs = validate_optional_text(
            data.get("value"), "value", self._config.max_text_length
        )
        errors.extend(errs)
        metadata, errs = validate_metadata(data.get("metadata"))
        errors.extend(errs)

        if errors:
            return IngestOutput(accepted=False, errors=errors)

        assert kind is not None
        path = path or DEFAULT_INTERACTION_PATH

        if not self._config.enabled or is_excluded_path(path, self._config):
            return IngestOutput(accepted=True, tracked=False)

        record = InteractionEvent(
            id=self._new_id(),
            type=kind,
            session_id=session_id or ANONYMOUS_SESSION,
            path=path,
            timestamp=self._time.now_utc(),
            element=element,
            value=value,
            metadata=metadata,
            user_agent=_text(inp.user_agent),
        )
        return self._store(record)

    def _store(self, record: EventRecord) -> IngestOutput:
        self._log.append(record)
        self._publish(record)
        return IngestOutput(accepted=True, tracked=True, record=record)

    def _publish(self, record: EventRecord) -> None:
        if self._publisher is None:
            return
        try:
            if isinstance(record, DurationUpdate):
                self._publisher.touch_session(record.session_id)
            else:
                new_session = not self._publisher.is_session_live(record.session_id)
                self._publisher.publish_event(record, new_session=new_session)
        except Exception:
            logger.exception("Live publish failed for record %s", record.id)


# --- Factory ---


def create_analytics_ingestion_service(
    event_log: EventLogPort,
    publisher: ActivityPublisherPort | None = None,
    rate_limiter: RateLimiterPort | None = None,
    time_port: TimePort | None = None,
    config: IngestionConfig | None = None,
) -> AnalyticsIngestionService:
    """Create an AnalyticsIngestionService."""
    return AnalyticsIngestionService(
        event_log=event_log,
        publisher=publisher,
        rate_limiter=rate_limiter,
        time_port=time_port,
        config=config,
    )
