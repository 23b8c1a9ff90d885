"""
Error taxonomy for the pilot/worker RPC layer.

Callers branch on these classes, never on message text:

    NavigationPreemptionError  -> recoverable, the command is retried
    ReconnectionError          -> the rebuild failed, surfaces to waiters
    ApplicationError           -> the remote method raised, never retried
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

URL_CHANGE_DETECTED = "URL_CHANGE_DETECTED"

_CONTEXT_DESTROYED_MARKERS = (
    "execution context was destroyed",
    "cannot find context with specified id",
    "frame was detached",
    "navigating frame was detached",
)

_PAGE_CLOSED_MARKERS = (
    "target page, context or browser has been closed",
    "target closed",
    "page has been closed",
    "browser has been closed",
)


class CliskError(Exception):
    """Base class for launcher errors."""


class HandshakeTimeoutError(CliskError):
    """
    No handshake response. Raised either after ``attempts`` unanswered offers
    or when a whole handshake overran a wall-clock ``timeout``.
    """

    def __init__(
        self,
        attempts: Optional[int] = None,
        interval: Optional[float] = None,
        message: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        self.attempts = attempts
        self.interval = interval
        self.timeout = timeout
        if message is None:
            if timeout is not None:
                message = f"Handshake timeout after {timeout:.1f}s"
            else:
                message = f"Handshake failed, no response after {attempts} attempts ({interval:.2f}s interval)"
        super().__init__(message)


class NavigationPreemptionError(CliskError):
    """The target context went away under an in-flight operation."""

    code = URL_CHANGE_DETECTED

    def __init__(self, message: str = "URL change detected", *, url: Optional[str] = None) -> None:
        self.url = url
        super().__init__(message)


class ContextDestroyedError(NavigationPreemptionError):
    """Transport-level failure: the page script context no longer exists."""


class ReconnectionError(CliskError):
    def __init__(self, message: str, *, reason: str = "error", episode_id: Optional[int] = None) -> None:
        self.reason = reason
        self.episode_id = episode_id
        super().__init__(message)


class ReconnectionTimeoutError(ReconnectionError):
    def __init__(
        self,
        message: str = "Reconnection timeout",
        *,
        reason: str = "timeout",
        episode_id: Optional[int] = None,
    ) -> None:
        super().__init__(message, reason=reason, episode_id=episode_id)


class PageClosedError(ReconnectionError):
    def __init__(self, message: str = "Page closed", *, episode_id: Optional[int] = None) -> None:
        super().__init__(message, reason="page-closed", episode_id=episode_id)


class ApplicationError(CliskError):
    """A remote method raised; the payload is carried verbatim."""

    def __init__(self, method: str, error: Any) -> None:
        self.method = method
        self.remote_error = error
        if isinstance(error, Mapping):
            self.remote_name = str(error.get("name") or "Error")
            message = str(error.get("message") or error)
        else:
            self.remote_name = "Error"
            message = str(error)
        self.remote_message = message
        super().__init__(f"{method}: {message}")


class CommandRetryExhaustedError(CliskError):
    def __init__(self, command: str, attempts: int) -> None:
        self.command = command
        self.attempts = attempts
        super().__init__(f"Command {command} failed after {attempts} attempts due to URL changes")


class ConnectorLoadError(CliskError):
    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"Failed to load connector from {path}: {message}")


def _message_of(exc: BaseException) -> str:
    return str(getattr(exc, "message", None) or exc).lower()


def is_context_destroyed_error(exc: BaseException) -> bool:
    if isinstance(exc, NavigationPreemptionError):
        return True
    text = _message_of(exc)
    return any(marker in text for marker in _CONTEXT_DESTROYED_MARKERS)


def is_page_closed_error(exc: BaseException) -> bool:
    if isinstance(exc, PageClosedError):
        return True
    if type(exc).__name__ == "TargetClosedError":
        return True
    text = _message_of(exc)
    return any(marker in text for marker in _PAGE_CLOSED_MARKERS)


def classify_playwright_error(exc: BaseException) -> BaseException:
    """Map a raw Playwright failure onto the taxonomy; unknown errors pass through."""
    if isinstance(exc, CliskError):
        return exc
    if is_page_closed_error(exc):
        return PageClosedError(str(exc))
    if is_context_destroyed_error(exc):
        return ContextDestroyedError(str(exc))
    return exc
