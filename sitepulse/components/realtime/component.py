"""
AnalyticsHub - publish/subscribe fan-out for live dashboard updates.

Key behaviors:
- Each connection owns a bounded outbound queue drained by its own sender
- Publishing never blocks; a full queue drops its oldest frame
- Frames reach a connection in publish order
- Publishing from another thread is handed to the connection's loop
- Ingestion with zero subscribers is a no-op apart from live state
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from sitepulse.components.analytics.models import (
    DurationUpdate,
    EventRecord,
    InteractionEvent,
    InteractionType,
    PageViewEvent,
)
from sitepulse.components.analytics.ports import TimePort
from sitepulse.core.services.analytics_useragent import parse_user_agent

from ._live import ActivityRing, LiveVisitorCounter
from .models import (
    ActivityType,
    LiveActivity,
    live_visitor_count,
    visitor_activity,
)

logger = logging.getLogger(__name__)


# --- Configuration ---


@dataclass(frozen=True)
class HubConfig:
    """Real-time channel configuration."""

    live_window_seconds: int = 300
    live_count_interval_seconds: float = 15
    activity_buffer_size: int = 50
    connection_queue_size: int = 100


DEFAULT_CONFIG = HubConfig()


# --- Activity Derivation ---


def derive_activity(record: EventRecord, *, new_session: bool) -> LiveActivity | None:
    """Map an ingested record to its feed item. Duration records have none."""
    if isinstance(record, DurationUpdate):
        return None

    summary = parse_user_agent(record.user_agent).summary()

    if isinstance(record, PageViewEvent):
        return LiveActivity(
            type=ActivityType.VISIT if new_session else ActivityType.PAGE_VIEW,
            page=record.path,
            timestamp=record.timestamp,
            user_agent=summary,
        )

    if isinstance(record, InteractionEvent):
        is_download = record.type == InteractionType.DOWNLOAD
        action = record.type.value
        if record.element:
            action = f"{action}: {record.element}"
        return LiveActivity(
            type=ActivityType.DOWNLOAD if is_download else ActivityType.INTERACTION,
            page=record.path,
            action=action,
            timestamp=record.timestamp,
            user_agent=summary,
        )

    return None


# --- Connections ---


class Connection:
    """
    One dashboard connection's outbound queue.

    The queue belongs to the event loop the connection was opened on.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        maxsize: int = 100,
        connection_id: str | None = None,
    ) -> None:
        self.id = connection_id or uuid4().hex
        self._loop = loop
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def _offer(self, frame: dict[str, Any] | None) -> None:
        # Runs on the owning loop only
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(frame)

    def send(self, frame: dict[str, Any] | None) -> None:
        """Queue a frame without blocking; safe from any thread."""
        if self.closed:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._offer(frame)
        else:
            try:
                self._loop.call_soon_threadsafe(self._offer, frame)
            except RuntimeError:
                # Owning loop already closed
                self.closed = True

    async def next_frame(self) -> dict[str, Any] | None:
        """Next outbound frame; ``None`` means the connection is closing."""
        return await self._queue.get()

    def close(self) -> None:
        self.send(None)
        self.closed = True


# --- Hub ---


class AnalyticsHub:
    """
    Live channel state shared by ingestion and all connections.

    Implements ActivityPublisherPort for the ingestion service.
    """

    def __init__(
        self,
        time_port: TimePort,
        config: HubConfig | None = None,
    ) -> None:
        self._config = config or DEFAULT_CONFIG
        self._counter = LiveVisitorCounter(time_port, self._config.live_window_seconds)
        self._activity = ActivityRing(self._config.activity_buffer_size)
        self._connections: dict[str, Connection] = {}
        self._subscribers: set[str] = set()
        self._lock = threading.Lock()

    @property
    def config(self) -> HubConfig:
        return self._config

    # --- Connection lifecycle ---

    def connect(self, loop: asyncio.AbstractEventLoop | None = None) -> Connection:
        """Register a new connection on ``loop`` (default: the running loop)."""
        conn = Connection(
            loop or asyncio.get_running_loop(),
            maxsize=self._config.connection_queue_size,
        )
        with self._lock:
            self._connections[conn.id] = conn
        logger.debug("Connection %s opened", conn.id)
        return conn

    def disconnect(self, conn: Connection) -> None:
        with self._lock:
            self._connections.pop(conn.id, None)
            self._subscribers.discard(conn.id)
        conn.close()
        if conn.dropped:
            logger.warning("Connection %s dropped %d frames", conn.id, conn.dropped)
        logger.debug("Connection %s closed", conn.id)

    def subscribe(self, conn: Connection) -> None:
        with self._lock:
            self._subscribers.add(conn.id)

    def unsubscribe(self, conn: Connection) -> None:
        with self._lock:
            self._subscribers.discard(conn.id)

    def is_subscribed(self, conn: Connection) -> bool:
        with self._lock:
            return conn.id in self._subscribers

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    # --- Fan-out ---

    def broadcast(self, frame: dict[str, Any]) -> int:
        """Queue a frame on every subscriber. Returns the number reached."""
        with self._lock:
            targets = [self._connections[cid] for cid in self._subscribers if cid in self._connections]
        for conn in targets:
            conn.send(frame)
        return len(targets)

    def broadcast_live_count(self) -> int:
        return self.broadcast(live_visitor_count(self.live_count()))

    # --- ActivityPublisherPort ---

    def publish_event(self, record: EventRecord, *, new_session: bool) -> None:
        """Update live state and fan out the derived activity."""
        self._counter.record(record.session_id)
        activity = derive_activity(record, new_session=new_session)
        if activity is None:
            return
        self._activity.append(activity)
        self.broadcast(visitor_activity(activity))
        self.broadcast_live_count()

    def is_session_live(self, session_id: str) -> bool:
        return self._counter.is_live(session_id)

    def touch_session(self, session_id: str) -> None:
        self._counter.record(session_id)

    # --- Live state ---

    def live_count(self) -> int:
        return self._counter.count()

    def recent_activity(self) -> list[LiveActivity]:
        return self._activity.recent()


async def run_live_count_ticker(hub: AnalyticsHub, interval_seconds: float | None = None) -> None:
    """Re-broadcast the live visitor count until cancelled."""
    interval = interval_seconds or hub.config.live_count_interval_seconds
    while True:
        await asyncio.sleep(interval)
        try:
            hub.broadcast_live_count()
        except Exception:
            logger.exception("Live count broadcast failed")


# --- Factory ---


def create_analytics_hub(
    time_port: TimePort,
    config: HubConfig | None = None,
) -> AnalyticsHub:
    """Create an AnalyticsHub."""
    return AnalyticsHub(time_port=time_port, config=config)
