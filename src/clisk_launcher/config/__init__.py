from .launcher_config import (
    BrowserConfig,
    CommandConfig,
    HandshakeConfig,
    LauncherConfig,
    ReconnectionConfig,
)

__all__ = [
    "BrowserConfig",
    "CommandConfig",
    "HandshakeConfig",
    "LauncherConfig",
    "ReconnectionConfig",
]
