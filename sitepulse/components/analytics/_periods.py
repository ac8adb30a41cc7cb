"""
Period resolution for aggregate queries.

All windows are half-open [start, end) in UTC. Rolling periods end at the
start of tomorrow so that every event received today is inside them.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from .models import PeriodRange, TimePeriod

DEFAULT_PERIOD = TimePeriod.LAST_30_DAYS

EARLIEST = datetime.min.replace(tzinfo=UTC)
# Last midnight, so day buckets can always step past the window end
LATEST = datetime.max.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=UTC)

_ROLLING_DAYS = {
    TimePeriod.LAST_7_DAYS: 7,
    TimePeriod.LAST_30_DAYS: 30,
    TimePeriod.LAST_90_DAYS: 90,
}


class InvalidPeriodError(ValueError):
    """Raised for unknown periods or malformed custom ranges."""


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def start_of_day(ts: datetime) -> datetime:
    """Truncate to UTC midnight. Naive datetimes are treated as UTC."""
    return _as_utc(ts).replace(hour=0, minute=0, second=0, microsecond=0)


def parse_period(value: str | TimePeriod | None) -> TimePeriod:
    """Parse a period name, defaulting to last 30 days."""
    if value is None or value == "":
        return DEFAULT_PERIOD
    if isinstance(value, TimePeriod):
        return value
    try:
        return TimePeriod(value.lower())
    except ValueError:
        allowed = ", ".join(p.value for p in TimePeriod)
        raise InvalidPeriodError(f"Invalid period: {value}. Must be one of: {allowed}") from None


def parse_boundary(value: str, *, is_end: bool) -> datetime:
    """
    Parse a custom range boundary.

    Date-only end values include that whole day.
    """
    raw = value.strip()
    try:
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
    except ValueError as e:
        raise InvalidPeriodError(f"Invalid datetime format: {value}") from e

    try:
        parsed = _as_utc(parsed)
        if is_end and len(raw) == 10:
            parsed += timedelta(days=1)
    except OverflowError as e:
        raise InvalidPeriodError(f"Date out of range: {value}") from e

    if parsed > LATEST:
        raise InvalidPeriodError(f"Date out of range: {value}")

    return parsed


def resolve_period(
    period: str | TimePeriod | None,
    now: datetime,
    start_date: str | None = None,
    end_date: str | None = None,
) -> PeriodRange:
    """Resolve a period name (and custom bounds) to a concrete window."""
    kind = parse_period(period)
    today = start_of_day(now)
    tomorrow = today + timedelta(days=1)

    if kind == TimePeriod.TODAY:
        return PeriodRange(kind, today, tomorrow)

    if kind == TimePeriod.YESTERDAY:
        return PeriodRange(kind, today - timedelta(days=1), today)

    if kind in _ROLLING_DAYS:
        days = _ROLLING_DAYS[kind]
        return PeriodRange(kind, tomorrow - timedelta(days=days), tomorrow)

    if kind == TimePeriod.THIS_MONTH:
        return PeriodRange(kind, today.replace(day=1), tomorrow)

    if kind == TimePeriod.LAST_MONTH:
        first_of_this = today.replace(day=1)
        first_of_last = (first_of_this - timedelta(days=1)).replace(day=1)
        return PeriodRange(kind, first_of_last, first_of_this)

    if kind == TimePeriod.THIS_YEAR:
        return PeriodRange(kind, today.replace(month=1, day=1), tomorrow)

    # Custom
    if not start_date or not end_date:
        raise InvalidPeriodError("Start date and end date are required for custom period")

    start = parse_boundary(start_date, is_end=False)
    end = parse_boundary(end_date, is_end=True)
    if end <= start:
        raise InvalidPeriodError("End date must be after start date")

    # Growth compares against the preceding window of equal length
    if start - EARLIEST < end - start:
        raise InvalidPeriodError("Date range is too early to compare with a previous period")

    return PeriodRange(kind, start, end)


def previous_range(current: PeriodRange) -> PeriodRange:
    """
    The window of equal length immediately preceding ``current``.

    Clamped at the earliest representable datetime.
    """
    if current.start - EARLIEST < current.length:
        return PeriodRange(current.period, EARLIEST, current.start)
    return PeriodRange(current.period, current.start - current.length, current.start)
