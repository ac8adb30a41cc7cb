from datetime import UTC, datetime

from sitepulse.adapters.clock import FixedClock, SystemClock


def test_system_clock():
    clock = SystemClock()
    now = clock.now_utc()
    assert now.tzinfo is not None
    # Sanity check: is it close to real now?
    diff = abs((datetime.now(UTC) - now).total_seconds())
    assert diff < 1.0


def test_fixed_clock_advances():
    clock = FixedClock(datetime(2024, 6, 15, 12, 0))
    assert clock.now_utc() == datetime(2024, 6, 15, 12, 0, tzinfo=UTC)

    clock.advance(90)
    clock.advance(minutes=1)
    assert clock.now_utc() == datetime(2024, 6, 15, 12, 2, 30, tzinfo=UTC)

    clock.set(datetime(2025, 1, 1, tzinfo=UTC))
    assert clock.now_utc().year == 2025
