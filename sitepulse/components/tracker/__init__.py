"""
Client tracker - session identity, page views, durations and interactions.
"""

from ._navigation import (
    CallbackNavigationObserver,
    HistoryNavigationObserver,
    HistoryPort,
    InMemoryHistory,
    InMemorySessionStorage,
)
from .component import (
    SESSION_ID_KEY,
    SESSION_START_KEY,
    ClientTracker,
    TrackerConfig,
)
from .ports import (
    LocationPort,
    NavigationObserverPort,
    SessionStoragePort,
    TimePort,
    TrackerTransportPort,
)
from .transport import HttpxTransport

__all__ = [
    "SESSION_ID_KEY",
    "SESSION_START_KEY",
    "CallbackNavigationObserver",
    "ClientTracker",
    "HistoryNavigationObserver",
    "HistoryPort",
    "HttpxTransport",
    "InMemoryHistory",
    "InMemorySessionStorage",
    "LocationPort",
    "NavigationObserverPort",
    "SessionStoragePort",
    "TimePort",
    "TrackerConfig",
    "TrackerTransportPort",
]
