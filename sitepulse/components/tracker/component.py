"""
ClientTracker - page view, duration and interaction capture.

Key behaviors:
- One session id per storage scope, created on the first tracked action
- A page view is sent on start and for every navigation that changes the path
- Only the first page view carries the document referrer
- Active time is flushed as a duration update on hide, unload and SPA
  navigation; less than one second is dropped
- Sends are best-effort; failures are logged and swallowed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sitepulse.components.analytics.models import InteractionType

from .ports import (
    LocationPort,
    NavigationObserverPort,
    SessionStoragePort,
    TimePort,
    TrackerTransportPort,
)

logger = logging.getLogger(__name__)

SESSION_ID_KEY = "analytics_session_id"
SESSION_START_KEY = "session_start_time"


@dataclass(frozen=True)
class TrackerConfig:
    page_view_endpoint: str = "/analytics/track-page-view"
    interaction_endpoint: str = "/analytics/track-interaction"
    min_duration_seconds: float = 1.0


DEFAULT_CONFIG = TrackerConfig()


class _UtcClock:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class ClientTracker:
    """
    Tracks one browsing context.

    The host forwards visibility and unload signals through
    ``on_visibility_change`` and ``on_unload``.
    """

    def __init__(
        self,
        transport: TrackerTransportPort,
        storage: SessionStoragePort,
        location: LocationPort,
        navigation: NavigationObserverPort | None = None,
        time_port: TimePort | None = None,
        config: TrackerConfig | None = None,
    ) -> None:
        self._transport = transport
        self._storage = storage
        self._location = location
        self._navigation = navigation
        self._time = time_port or _UtcClock()
        self._config = config or DEFAULT_CONFIG

        self._session_id: str | None = None
        self._current_path: str | None = None
        self._active_since: datetime | None = None
        self._started = False

    # --- Session identity ---

    @property
    def session_id(self) -> str:
        """Session id for this storage scope, created on first use."""
        if self._session_id is None:
            self._session_id = self._get_or_create_session_id()
        return self._session_id

    def _get_or_create_session_id(self) -> str:
        session_id = self._storage.get_item(SESSION_ID_KEY)
        if not session_id:
            session_id = str(uuid4())
            self._storage.set_item(SESSION_ID_KEY, session_id)
            self._storage.set_item(SESSION_START_KEY, self._time.now_utc().isoformat())
        return session_id

    # --- Lifecycle ---

    def start(self) -> None:
        """Send the initial page view and begin observing navigation."""
        if self._started:
            return
        self._started = True
        self.track_page_view(include_referrer=True)
        if self._navigation is not None:
            self._navigation.start(self._on_navigate)

    def stop(self) -> None:
        if self._navigation is not None:
            self._navigation.stop()
        self._started = False

    # --- Page views and durations ---

    def track_page_view(self, path: str | None = None, *, include_referrer: bool = False) -> None:
        current = path or self._location.pathname()
        payload: dict[str, Any] = {"path": current, "sessionId": self.session_id}
        if include_referrer:
            referrer = self._location.referrer()
            if referrer:
                payload["referer"] = referrer

        self._send(self._config.page_view_endpoint, payload)
        self._current_path = current
        self._active_since = self._time.now_utc()

    def _on_navigate(self, path: str) -> None:
        if path == self._current_path:
            return
        self._flush_duration()
        self.track_page_view(path)

    def on_visibility_change(self, visible: bool) -> None:
        if visible:
            self._active_since = self._time.now_utc()
        else:
            self._flush_duration()

    def on_unload(self) -> None:
        self._flush_duration()

    def _flush_duration(self) -> None:
        if self._active_since is None or self._current_path is None:
            return
        elapsed = (self._time.now_utc() - self._active_since).total_seconds()
        self._active_since = None

        if elapsed < self._config.min_duration_seconds:
            return

        self._send(
            self._config.page_view_endpoint,
            {
                "path": self._current_path,
                "sessionId": self.session_id,
                "duration": max(1, round(elapsed)),
            },
        )

    # --- Interactions ---

    def track_interaction(
        self,
        type: InteractionType | str,
        element: str | None = None,
        value: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        kind = type.value if isinstance(type, InteractionType) else type
        payload: dict[str, Any] = {
            "type": kind,
            "sessionId": self.session_id,
            "path": self._location.pathname(),
        }
        if element is not None:
            payload["element"] = element
        if value is not None:
            payload["value"] = value
        if metadata is not None:
            payload["metadata"] = metadata
        self._send(self._config.interaction_endpoint, payload)

    def track_form_submission(self, form_name: str, form_data: dict[str, Any] | None = None) -> None:
        self.track_interaction(InteractionType.FORM_SUBMISSION, form_name, metadata=form_data)

    def track_button_click(self, button_name: str, metadata: dict[str, Any] | None = None) -> None:
        self.track_interaction(InteractionType.BUTTON_CLICK, button_name, metadata=metadata)

    def track_download(self, file_name: str, file_type: str | None = None) -> None:
        self.track_interaction(InteractionType.DOWNLOAD, file_name, file_type)

    def track_external_link(self, url: str) -> None:
        self.track_interaction(InteractionType.EXTERNAL_LINK, url)

    def track_custom_event(self, event_name: str, event_data: dict[str, Any] | None = None) -> None:
        self.track_interaction(InteractionType.CUSTOM_EVENT, event_name, metadata=event_data)

    # --- Delivery ---

    def _send(self, endpoint: str, payload: dict[str, Any]) -> None:
        try:
            self._transport.send(endpoint, payload)
        except Exception:
            logger.warning("Analytics: failed to queue %s", endpoint, exc_info=True)
