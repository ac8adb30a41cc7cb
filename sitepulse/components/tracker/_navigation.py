"""
Navigation observers and in-memory host adapters for the tracker.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from .ports import LocationPort

logger = logging.getLogger(__name__)


class HistoryPort(Protocol):
    """History API surface the observer hooks into."""

    push_state: Callable[..., Any]
    replace_state: Callable[..., Any]

    def add_popstate_listener(self, listener: Callable[[], None]) -> None: ...

    def remove_popstate_listener(self, listener: Callable[[], None]) -> None: ...


class HistoryNavigationObserver:
    """
    Reports navigations made through a history object.

    ``push_state`` and ``replace_state`` are replaced with wrappers that call
    the original first and then report the resulting path. Back/forward
    navigation is reported from the popstate notification. ``stop()``
    restores the originals.
    """

    def __init__(self, history: HistoryPort, location: LocationPort) -> None:
        self._history = history
        self._location = location
        self._callback: Callable[[str], None] | None = None
        self._original_push: Callable[..., Any] | None = None
        self._original_replace: Callable[..., Any] | None = None

    def start(self, on_navigate: Callable[[str], None]) -> None:
        if self._callback is not None:
            return
        self._callback = on_navigate
        self._original_push = self._history.push_state
        self._original_replace = self._history.replace_state
        self._history.push_state = self._wrap(self._original_push)
        self._history.replace_state = self._wrap(self._original_replace)
        self._history.add_popstate_listener(self._on_popstate)

    def stop(self) -> None:
        if self._callback is None:
            return
        if self._original_push is not None:
            self._history.push_state = self._original_push
        if self._original_replace is not None:
            self._history.replace_state = self._original_replace
        self._history.remove_popstate_listener(self._on_popstate)
        self._callback = None

    def _wrap(self, original: Callable[..., Any]) -> Callable[..., Any]:
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            result = original(*args, **kwargs)
            self._report()
            return result

        return wrapper

    def _on_popstate(self) -> None:
        self._report()

    def _report(self) -> None:
        if self._callback is None:
            return
        try:
            self._callback(self._location.pathname())
        except Exception:
            logger.warning("Navigation callback failed", exc_info=True)


class CallbackNavigationObserver:
    """Manual navigation source for hosts without a history API."""

    def __init__(self) -> None:
        self._callback: Callable[[str], None] | None = None

    def start(self, on_navigate: Callable[[str], None]) -> None:
        self._callback = on_navigate

    def stop(self) -> None:
        self._callback = None

    def navigate(self, path: str) -> None:
        if self._callback is not None:
            self._callback(path)


# --- In-memory host adapters ---


class InMemorySessionStorage:
    """Dict-backed session storage for tests and non-browser hosts."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value


class InMemoryHistory:
    """
    Minimal history stack that also serves as the location.

    ``url`` arguments are taken as paths.
    """

    def __init__(self, initial_path: str = "/", referrer: str | None = None) -> None:
        self._entries: list[str] = [initial_path]
        self._index = 0
        self._referrer = referrer
        self._listeners: list[Callable[[], None]] = []

    # LocationPort

    def pathname(self) -> str:
        return self._entries[self._index]

    def referrer(self) -> str | None:
        return self._referrer

    # History API

    def push_state(self, state: Any = None, title: str = "", url: str | None = None) -> None:
        path = url or self.pathname()
        del self._entries[self._index + 1 :]
        self._entries.append(path)
        self._index += 1

    def replace_state(self, state: Any = None, title: str = "", url: str | None = None) -> None:
        self._entries[self._index] = url or self.pathname()

    def back(self) -> None:
        if self._index > 0:
            self._index -= 1
            self._fire()

    def forward(self) -> None:
        if self._index < len(self._entries) - 1:
            self._index += 1
            self._fire()

    def add_popstate_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def remove_popstate_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _fire(self) -> None:
        for listener in list(self._listeners):
            listener()
