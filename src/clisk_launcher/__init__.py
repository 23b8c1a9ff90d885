from clisk_launcher.config import LauncherConfig
from clisk_launcher.errors import (
    ApplicationError,
    CliskError,
    CommandRetryExhaustedError,
    ContextDestroyedError,
    HandshakeTimeoutError,
    NavigationPreemptionError,
    PageClosedError,
    ReconnectionError,
    ReconnectionTimeoutError,
)
from clisk_launcher.launcher import PlaywrightLauncher

__version__ = "0.1.0"

__all__ = [
    "ApplicationError",
    "CliskError",
    "CommandRetryExhaustedError",
    "ContextDestroyedError",
    "HandshakeTimeoutError",
    "LauncherConfig",
    "NavigationPreemptionError",
    "PageClosedError",
    "PlaywrightLauncher",
    "ReconnectionError",
    "ReconnectionTimeoutError",
]
