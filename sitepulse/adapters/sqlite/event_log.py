"""
SQLite event log and contact submission source.

All three record kinds live in one ``analytics_events`` table so a window is
read with a single statement, which SQLite runs against one consistent
snapshot of the database.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import UTC, datetime
from typing import Any

from sitepulse.components.analytics.models import (
    DurationUpdate,
    EventRecord,
    EventSnapshot,
    InteractionEvent,
    InteractionType,
    PageViewEvent,
)

logger = logging.getLogger(__name__)


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def format_ts(ts: datetime) -> str:
    """Fixed-width UTC ISO string; sorts lexicographically by time."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat(timespec="microseconds")


def parse_ts(s: str) -> datetime:
    parsed = datetime.fromisoformat(s)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None


class SQLiteEventLog(SQLiteRepoBase):
    """SQLite implementation of EventLogPort."""

    def append(self, record: EventRecord) -> None:
        row = self._to_row(record)
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO analytics_events (
                    id, kind, session_id, path, ts, referer, user_agent,
                    duration_seconds, interaction_type, element, value, metadata_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    row["id"],
                    row["kind"],
                    row["session_id"],
                    row["path"],
                    row["ts"],
                    row["referer"],
                    row["user_agent"],
                    row["duration_seconds"],
                    row["interaction_type"],
                    row["element"],
                    row["value"],
                    row["metadata_json"],
                ),
            )
            conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def snapshot(self, start: datetime, end: datetime) -> EventSnapshot:
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.row_factory = dict_factory
            rows = cursor.execute(
                "SELECT * FROM analytics_events WHERE ts >= ? AND ts < ? ORDER BY ts, rowid",
                (format_ts(start), format_ts(end)),
            ).fetchall()
        finally:
            if self._should_close():
                conn.close()

        page_views: list[PageViewEvent] = []
        durations: list[DurationUpdate] = []
        interactions: list[InteractionEvent] = []

        for row in rows:
            kind = row["kind"]
            if kind == "page_view":
                page_views.append(self._map_view(row))
            elif kind == "duration":
                durations.append(self._map_duration(row))
            elif kind == "interaction":
                interactions.append(self._map_interaction(row))
            else:
                logger.warning("Skipping event %s with unknown kind %r", row["id"], kind)

        return EventSnapshot(
            page_views=tuple(page_views),
            durations=tuple(durations),
            interactions=tuple(interactions),
        )

    # --- Mapping ---

    def _to_row(self, record: EventRecord) -> dict[str, Any]:
        row: dict[str, Any] = {
            "id": record.id,
            "session_id": record.session_id,
            "path": record.path,
            "ts": format_ts(record.timestamp),
            "referer": None,
            "user_agent": None,
            "duration_seconds": None,
            "interaction_type": None,
            "element": None,
            "value": None,
            "metadata_json": None,
        }
        if isinstance(record, PageViewEvent):
            row.update(kind="page_view", referer=record.referer, user_agent=record.user_agent)
        elif isinstance(record, DurationUpdate):
            row.update(kind="duration", duration_seconds=record.duration_seconds)
        else:
            row.update(
                kind="interaction",
                user_agent=record.user_agent,
                interaction_type=record.type.value,
                element=record.element,
                value=record.value,
                metadata_json=json.dumps(record.metadata) if record.metadata is not None else None,
            )
        return row

    def _map_view(self, row: dict[str, Any]) -> PageViewEvent:
        return PageViewEvent(
            id=row["id"],
            session_id=row["session_id"],
            path=row["path"],
            timestamp=parse_ts(row["ts"]),
            referer=row["referer"],
            user_agent=row["user_agent"],
        )

    def _map_duration(self, row: dict[str, Any]) -> DurationUpdate:
        return DurationUpdate(
            id=row["id"],
            session_id=row["session_id"],
            path=row["path"],
            duration_seconds=int(row["duration_seconds"]),
            timestamp=parse_ts(row["ts"]),
        )

    def _map_interaction(self, row: dict[str, Any]) -> InteractionEvent:
        return InteractionEvent(
            id=row["id"],
            type=InteractionType(row["interaction_type"]),
            session_id=row["session_id"],
            path=row["path"],
            timestamp=parse_ts(row["ts"]),
            element=row["element"],
            value=row["value"],
            metadata=json.loads(row["metadata_json"]) if row["metadata_json"] else None,
            user_agent=row["user_agent"],
        )


class SQLiteContactSource(SQLiteRepoBase):
    """
    Counts contact submissions owned by the contacts CRUD layer.

    Returns 0 while that layer's table does not exist.
    """

    def __init__(
        self,
        db_path: str,
        connection: sqlite3.Connection | None = None,
        table: str = "contacts",
        created_column: str = "created_at",
    ):
        super().__init__(db_path, connection)
        if not (table.isidentifier() and created_column.isidentifier()):
            raise ValueError("Table and column names must be plain identifiers")
        self._table = table
        self._column = created_column

    def count_submissions(self, start: datetime, end: datetime) -> int:
        fmt = "%Y-%m-%d %H:%M:%S"
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"SELECT COUNT(*) FROM {self._table} "
                f"WHERE datetime({self._column}) >= ? AND datetime({self._column}) < ?",
                (start.astimezone(UTC).strftime(fmt), end.astimezone(UTC).strftime(fmt)),
            ).fetchone()
        except sqlite3.OperationalError as e:
            if "no such table" in str(e):
                logger.debug("Contacts table %s not present", self._table)
                return 0
            raise
        finally:
            if self._should_close():
                conn.close()

        if row is None:
            return 0
        return int(next(iter(row.values())) if isinstance(row, dict) else row[0])


class InMemoryContactSource:
    """Contact submission timestamps held in memory (tests and dev)."""

    def __init__(self, created: list[datetime] | None = None) -> None:
        self._created = list(created or [])

    def add(self, created_at: datetime) -> None:
        self._created.append(created_at)

    def count_submissions(self, start: datetime, end: datetime) -> int:
        return sum(1 for ts in self._created if start <= ts < end)
