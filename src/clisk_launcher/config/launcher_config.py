from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .env import _parse_bool_env, _parse_int_env, _parse_ms_env

# Pixel 5 profile; the pages emulate a mobile webview.
DEFAULT_CONTEXT_OPTIONS: Dict[str, Any] = {
    "viewport": {"width": 393, "height": 851},
    "device_scale_factor": 2.75,
    "is_mobile": True,
    "has_touch": True,
    "user_agent": (
        "Mozilla/5.0 (Linux; Android 11; Pixel 5) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
    ),
}


def _float(data: Dict[str, Any], key: str, default: float) -> float:
    try:
        return float(data.get(key, default))
    except (TypeError, ValueError):
        return default


def _int(data: Dict[str, Any], key: str, default: int, minimum: int = 1) -> int:
    try:
        return max(minimum, int(data.get(key, default)))
    except (TypeError, ValueError):
        return default


@dataclass
class HandshakeConfig:
    max_attempts: int = 10
    attempt_interval: float = 1.0
    delay: float = 3.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HandshakeConfig":
        if not isinstance(data, dict):
            return cls()
        return cls(
            max_attempts=_int(data, "max_attempts", 10),
            attempt_interval=_float(data, "attempt_interval", 1.0),
            delay=_float(data, "delay", 3.0),
        )


@dataclass
class ReconnectionConfig:
    stabilize_delay: float = 2.0
    handshake_timeout: float = 10.0
    ceiling: float = 15.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReconnectionConfig":
        if not isinstance(data, dict):
            return cls()
        return cls(
            stabilize_delay=_float(data, "stabilize_delay", 2.0),
            handshake_timeout=_float(data, "handshake_timeout", 10.0),
            ceiling=_float(data, "ceiling", 15.0),
        )


@dataclass
class CommandConfig:
    max_attempts: int = 3
    pre_call_delay: float = 0.5
    outcome_wait_timeout: float = 30.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandConfig":
        if not isinstance(data, dict):
            return cls()
        return cls(
            max_attempts=_int(data, "max_attempts", 3),
            pre_call_delay=_float(data, "pre_call_delay", 0.5),
            outcome_wait_timeout=_float(data, "outcome_wait_timeout", 30.0),
        )


@dataclass
class BrowserConfig:
    headless: bool = False
    context_options: Dict[str, Any] = field(
        default_factory=lambda: dict(DEFAULT_CONTEXT_OPTIONS)
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrowserConfig":
        if not isinstance(data, dict):
            return cls()
        options = data.get("context_options")
        return cls(
            headless=bool(data.get("headless", False)),
            context_options=dict(options) if isinstance(options, dict) else dict(DEFAULT_CONTEXT_OPTIONS),
        )


@dataclass
class LauncherConfig:
    handshake: HandshakeConfig = field(default_factory=HandshakeConfig)
    reconnection: ReconnectionConfig = field(default_factory=ReconnectionConfig)
    command: CommandConfig = field(default_factory=CommandConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    navigation_settle: float = 0.5
    log_preset: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LauncherConfig":
        if not isinstance(data, dict):
            return cls()
        logging_cfg = data.get("logging") or {}
        return cls(
            handshake=HandshakeConfig.from_dict(data.get("handshake") or {}),
            reconnection=ReconnectionConfig.from_dict(data.get("reconnection") or {}),
            command=CommandConfig.from_dict(data.get("command") or {}),
            browser=BrowserConfig.from_dict(data.get("browser") or {}),
            navigation_settle=_float(data, "navigation_settle", 0.5),
            log_preset=logging_cfg.get("preset") if isinstance(logging_cfg, dict) else None,
        )

    @classmethod
    def from_env(cls, base: Optional["LauncherConfig"] = None) -> "LauncherConfig":
        """Apply CLISK_* environment overrides on top of ``base``."""
        cfg = base or cls()
        cfg.browser.headless = _parse_bool_env("CLISK_HEADLESS", cfg.browser.headless)
        cfg.handshake.max_attempts = _parse_int_env(
            "CLISK_HANDSHAKE_MAX_ATTEMPTS", cfg.handshake.max_attempts, 1
        )
        cfg.handshake.attempt_interval = _parse_ms_env(
            "CLISK_HANDSHAKE_INTERVAL_MS", cfg.handshake.attempt_interval, 10
        )
        cfg.handshake.delay = _parse_ms_env("CLISK_HANDSHAKE_DELAY_MS", cfg.handshake.delay)
        cfg.reconnection.handshake_timeout = _parse_ms_env(
            "CLISK_RECONNECT_HANDSHAKE_TIMEOUT_MS", cfg.reconnection.handshake_timeout, 100
        )
        cfg.reconnection.ceiling = _parse_ms_env(
            "CLISK_RECONNECT_CEILING_MS", cfg.reconnection.ceiling, 100
        )
        cfg.reconnection.stabilize_delay = _parse_ms_env(
            "CLISK_RECONNECT_STABILIZE_MS", cfg.reconnection.stabilize_delay
        )
        cfg.command.max_attempts = _parse_int_env(
            "CLISK_COMMAND_MAX_ATTEMPTS", cfg.command.max_attempts, 1
        )
        cfg.navigation_settle = _parse_ms_env("CLISK_NAVIGATION_SETTLE_MS", cfg.navigation_settle)
        return cfg
