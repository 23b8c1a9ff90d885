from .monitor import BLANK_URL, NavigationMonitor, UrlChangeEvent
from .reconnection import (
    NO_RECONNECTION,
    ReconnectionCoordinator,
    ReconnectionOutcome,
    ReconnectionResult,
    ReconnectionState,
)

__all__ = [
    "BLANK_URL",
    "NO_RECONNECTION",
    "NavigationMonitor",
    "ReconnectionCoordinator",
    "ReconnectionOutcome",
    "ReconnectionResult",
    "ReconnectionState",
    "UrlChangeEvent",
]
