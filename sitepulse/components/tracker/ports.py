"""
Tracker port definitions.

The tracker never touches a browser directly; the host supplies storage,
location, navigation and transport through these ports.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol


class SessionStoragePort(Protocol):
    """Tab-scoped key/value storage."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...


class LocationPort(Protocol):
    """Current document location."""

    def pathname(self) -> str:
        """Logical route of the current page."""
        ...

    def referrer(self) -> str | None:
        """Document referrer, if any."""
        ...


class NavigationObserverPort(Protocol):
    """Source of in-page navigation notifications."""

    def start(self, on_navigate: Callable[[str], None]) -> None:
        """Begin reporting the path after every navigation."""
        ...

    def stop(self) -> None:
        """Stop reporting and release any hooks."""
        ...


class TrackerTransportPort(Protocol):
    """Fire-and-forget delivery of tracker submissions."""

    def send(self, endpoint: str, payload: dict[str, Any]) -> None:
        """Queue a POST. Must return immediately and never raise."""
        ...


class TimePort(Protocol):
    def now_utc(self) -> datetime: ...
