"""
Analytics component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .models import EventRecord, EventSnapshot


class EventLogPort(Protocol):
    """Append-only event log."""

    def append(self, record: EventRecord) -> None:
        """Append a view, duration or interaction record."""
        ...

    def snapshot(self, start: datetime, end: datetime) -> EventSnapshot:
        """Read every record with start <= timestamp < end in one consistent view."""
        ...


class ContactSubmissionPort(Protocol):
    """Read-only view of the contacts CRUD layer."""

    def count_submissions(self, start: datetime, end: datetime) -> int:
        """Count contact submissions created in [start, end)."""
        ...


class RateLimiterPort(Protocol):
    """Rate limiter interface."""

    def check_rate_limit(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Check if rate limit allows request. Returns True if allowed."""
        ...

    def record_request(self, key: str, window_seconds: int) -> None:
        """Record a request for rate limiting."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...


class ActivityPublisherPort(Protocol):
    """Sink for newly ingested events (the real-time channel)."""

    def publish_event(self, record: EventRecord, *, new_session: bool) -> None:
        """Publish a freshly ingested record. Must not block."""
        ...

    def is_session_live(self, session_id: str) -> bool:
        """Whether the session has activity inside the live window."""
        ...

    def touch_session(self, session_id: str) -> None:
        """Record activity without broadcasting an activity item."""
        ...
