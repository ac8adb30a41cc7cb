"""
In-memory live state: the "currently online" counter and the recent
activity ring buffer.

Both are approximate views that are never reconciled with the event log.
"""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timedelta

from sitepulse.components.analytics.ports import TimePort

from .models import LiveActivity


class LiveVisitorCounter:
    """
    Sliding-window set of recently active sessions.

    Entries older than the window are pruned on every read and write.
    """

    def __init__(self, time_port: TimePort, window_seconds: int = 300) -> None:
        self._time = time_port
        self._window = timedelta(seconds=window_seconds)
        self._last_seen: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def _prune(self, now: datetime) -> None:
        cutoff = now - self._window
        stale = [sid for sid, seen in self._last_seen.items() if seen < cutoff]
        for sid in stale:
            del self._last_seen[sid]

    def record(self, session_id: str) -> None:
        now = self._time.now_utc()
        with self._lock:
            self._prune(now)
            self._last_seen[session_id] = now

    def is_live(self, session_id: str) -> bool:
        with self._lock:
            self._prune(self._time.now_utc())
            return session_id in self._last_seen

    def count(self) -> int:
        with self._lock:
            self._prune(self._time.now_utc())
            return len(self._last_seen)


class ActivityRing:
    """Fixed-size buffer of the most recent live activity."""

    def __init__(self, size: int = 50) -> None:
        self._items: deque[LiveActivity] = deque(maxlen=size)
        self._lock = threading.Lock()

    def append(self, activity: LiveActivity) -> None:
        with self._lock:
            self._items.append(activity)

    def recent(self) -> list[LiveActivity]:
        """Newest first."""
        with self._lock:
            return list(reversed(self._items))

    def __len__(self) -> int:
        return len(self._items)
