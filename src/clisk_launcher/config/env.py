"""Environment parsing helpers shared by config dataclasses."""

from __future__ import annotations

import os


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    text = raw.strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int_env(name: str, default: int, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return max(minimum, int(default))
    try:
        parsed = int(raw.strip())
    except Exception:
        return max(minimum, int(default))
    return max(minimum, parsed)


def _parse_ms_env(name: str, default_seconds: float, minimum_ms: int = 0) -> float:
    """Read a millisecond env value and return seconds."""
    default_ms = int(round(default_seconds * 1000))
    return _parse_int_env(name, default_ms, minimum_ms) / 1000.0
