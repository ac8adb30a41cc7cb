from datetime import UTC, datetime
from pathlib import Path

import pytest

from sitepulse.adapters.clock import FixedClock
from sitepulse.adapters.sqlite.event_log import InMemoryContactSource
from sitepulse.adapters.sqlite.migrator import SQLiteMigrator
from sitepulse.api.deps import AnalyticsContext
from sitepulse.components.analytics import InMemoryEventLog
from sitepulse.rules.loader import load_rules
from sitepulse.rules.models import Rules

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Saturday
NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def rules() -> Rules:
    """The real rules file from the project root."""
    return load_rules(PROJECT_ROOT / "rules.yaml")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def event_log() -> InMemoryEventLog:
    return InMemoryEventLog()


@pytest.fixture
def contacts() -> InMemoryContactSource:
    return InMemoryContactSource()


@pytest.fixture
def analytics_ctx(
    event_log: InMemoryEventLog,
    contacts: InMemoryContactSource,
    clock: FixedClock,
    rules: Rules,
) -> AnalyticsContext:
    """Analytics context over in-memory adapters and a fixed clock."""
    return AnalyticsContext.create(
        event_log=event_log,
        contacts=contacts,
        clock=clock,
        rules=rules.analytics,
    )


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Migrated SQLite database in a temp dir."""
    path = str(tmp_path / "sitepulse.db")
    SQLiteMigrator(path).run_migrations()
    return path
