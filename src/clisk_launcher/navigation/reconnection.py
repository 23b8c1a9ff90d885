"""
Single-flight rebuild of a page's RPC session after navigation.

Each navigation episode gets a monotonically increasing id and one
``ReconnectionOutcome``. A new episode starts only when none is pending;
URL changes seen while one runs are folded into it.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Optional

from clisk_launcher.common.logging_utils import _log_launcher_event
from clisk_launcher.config import ReconnectionConfig
from clisk_launcher.errors import (
    HandshakeTimeoutError,
    PageClosedError,
    ReconnectionError,
    ReconnectionTimeoutError,
    is_page_closed_error,
)
from clisk_launcher.event import EventHub, EventNames
from clisk_launcher.page import CliskPage, PageLifecycle
from clisk_launcher.util.time_utils import _elapsed_ms, _now_iso

from .monitor import NavigationMonitor, UrlChangeEvent

logger = logging.getLogger(__name__)


class ReconnectionState(str, Enum):
    IDLE = "idle"
    RECONNECT_STARTED = "reconnect-started"
    BRIDGE_READY = "bridge-ready"
    CONNECTOR_REINJECTED = "connector-reinjected"
    HANDSHAKING = "handshaking"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class ReconnectionResult:
    episode_id: int
    reconnected: bool
    old_url: Optional[str] = None
    new_url: Optional[str] = None
    duration_ms: int = 0


NO_RECONNECTION = ReconnectionResult(episode_id=0, reconnected=False)


def _consume_exception(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


def _resolved(result: ReconnectionResult) -> "asyncio.Future[ReconnectionResult]":
    future: asyncio.Future[ReconnectionResult] = asyncio.get_running_loop().create_future()
    future.set_result(result)
    return future


class ReconnectionOutcome:
    """Pending-or-settled result of one episode. Settles exactly once."""

    def __init__(self, episode_id: int, old_url: Optional[str], new_url: Optional[str]) -> None:
        self.episode_id = episode_id
        self.old_url = old_url
        self.target_url = new_url
        self.generation = 0
        self.state = ReconnectionState.RECONNECT_STARTED
        self.started_at = time.monotonic()
        self.future: asyncio.Future[ReconnectionResult] = asyncio.get_running_loop().create_future()
        self.future.add_done_callback(_consume_exception)

    @property
    def pending(self) -> bool:
        return not self.future.done()

    @property
    def failure(self) -> Optional[BaseException]:
        if self.pending or self.future.cancelled():
            return None
        return self.future.exception()

    def wait(self) -> Awaitable[ReconnectionResult]:
        return asyncio.shield(self.future)

    def note_url(self, new_url: str) -> None:
        self.target_url = new_url
        self.generation += 1

    def transition(self, state: ReconnectionState) -> None:
        if self.pending:
            self.state = state

    def settle_success(self, result: ReconnectionResult) -> bool:
        if not self.pending:
            return False
        self.state = ReconnectionState.SUCCESS
        self.future.set_result(result)
        return True

    def settle_failure(self, error: BaseException) -> bool:
        if not self.pending:
            return False
        self.state = ReconnectionState.FAILURE
        self.future.set_exception(error)
        return True


class ReconnectionCoordinator:
    def __init__(
        self,
        page: CliskPage,
        monitor: NavigationMonitor,
        *,
        events: EventHub,
        config: Optional[ReconnectionConfig] = None,
    ) -> None:
        self._page = page
        self._monitor = monitor
        self._events = events
        self._config = config or ReconnectionConfig()
        self._episode_ids = itertools.count(1)
        self._episode_task: Optional[asyncio.Task] = None
        self._episode_started: Optional[asyncio.Future] = None
        self._closed = False
        self.current: Optional[ReconnectionOutcome] = None
        monitor.add_listener(self.handle_url_change)

    @property
    def last_episode_id(self) -> int:
        return self.current.episode_id if self.current is not None else 0

    @property
    def in_progress(self) -> bool:
        return self.current is not None and self.current.pending

    @property
    def state(self) -> ReconnectionState:
        if self.current is None:
            return ReconnectionState.IDLE
        return self.current.state

    @property
    def last_failure(self) -> Optional[BaseException]:
        if self.current is None:
            return None
        return self.current.failure

    def get_reconnection_outcome(self) -> Awaitable[ReconnectionResult]:
        """The pending episode, or an already-resolved ``NO_RECONNECTION``."""
        current = self.current
        if current is not None and current.pending:
            return current.wait()
        return _resolved(NO_RECONNECTION)

    def outcome_since(self, episode_id: int) -> Awaitable[ReconnectionResult]:
        """Outcome of the latest episode newer than ``episode_id``, settled or not."""
        current = self.current
        if current is not None and current.episode_id > episode_id:
            return current.wait()
        return _resolved(NO_RECONNECTION)

    async def wait_for_next_outcome(self, after_episode_id: int, timeout: float) -> ReconnectionResult:
        """Wait for an episode newer than ``after_episode_id`` to start, then for its outcome."""
        current = self.current
        if current is None or current.episode_id <= after_episode_id:
            if self._closed:
                raise PageClosedError(f"Page {self._page.name} closed")
            started = self._next_episode_started()
            try:
                await asyncio.wait_for(asyncio.shield(started), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise ReconnectionTimeoutError(
                    f"No reconnection started within {timeout:.1f}s",
                    reason="wait-timeout",
                ) from exc
            current = self.current
        return await current.wait()

    def handle_url_change(self, event: UrlChangeEvent) -> Optional[ReconnectionOutcome]:
        if self._closed or not self._page.monitoring_enabled or self._page.is_closed():
            logger.debug("URL change ignored page=%s new_url=%s", self._page.name, event.new_url)
            return None
        current = self.current
        if current is not None and current.pending:
            current.note_url(event.new_url)
            _log_launcher_event(
                logger,
                level=logging.INFO,
                event="reconnection_folded",
                page=self._page.name,
                episode=current.episode_id,
                new_url=event.new_url,
            )
            return current
        return self._start_episode(event.old_url, event.new_url, trigger="navigation")

    def manual_reconnect(self) -> Awaitable[ReconnectionResult]:
        if self._closed or self._page.is_closed():
            raise PageClosedError(f"Page {self._page.name} closed")
        current = self.current
        if current is not None and current.pending:
            return current.wait()
        url = self._page.url
        return self._start_episode(url, url, trigger="manual").wait()

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        started = self._episode_started
        if started is not None and not started.done():
            started.set_exception(PageClosedError(f"Page {self._page.name} closed"))
            started.add_done_callback(_consume_exception)
        current = self.current
        if current is not None and current.pending:
            self._fail(current, PageClosedError("Page closed during reconnection", episode_id=current.episode_id))
        task = self._episode_task
        if task is not None and not task.done():
            task.cancel()

    def _next_episode_started(self) -> asyncio.Future:
        if self._episode_started is None or self._episode_started.done():
            self._episode_started = asyncio.get_running_loop().create_future()
        return self._episode_started

    def _start_episode(self, old_url: Optional[str], new_url: Optional[str], *, trigger: str) -> ReconnectionOutcome:
        outcome = ReconnectionOutcome(next(self._episode_ids), old_url, new_url)
        self.current = outcome
        started = self._episode_started
        self._episode_started = None
        if started is not None and not started.done():
            started.set_result(outcome)
        self._page.update_lifecycle(PageLifecycle.NAVIGATING, episode=outcome.episode_id)
        _log_launcher_event(
            logger,
            level=logging.INFO,
            event="reconnection_start",
            page=self._page.name,
            episode=outcome.episode_id,
            trigger=trigger,
            old_url=old_url,
            new_url=new_url,
        )
        self._events.emit(
            EventNames.RECONNECTION_START,
            {
                "pageName": self._page.name,
                "episodeId": outcome.episode_id,
                "oldUrl": old_url,
                "newUrl": new_url,
            },
        )
        self._episode_task = asyncio.ensure_future(self._run_episode(outcome))
        return outcome

    async def _run_episode(self, outcome: ReconnectionOutcome) -> None:
        try:
            await asyncio.wait_for(self._rebuild(outcome), timeout=self._config.ceiling)
        except asyncio.TimeoutError:
            self._fail(
                outcome,
                ReconnectionTimeoutError(
                    f"Reconnection timeout after {self._config.ceiling:.1f}s",
                    episode_id=outcome.episode_id,
                ),
            )
            return
        except asyncio.CancelledError:
            self._fail(outcome, PageClosedError("Reconnection cancelled", episode_id=outcome.episode_id))
            raise
        except Exception as exc:
            self._fail(outcome, self._classify_failure(exc, outcome))
            return

        result = ReconnectionResult(
            episode_id=outcome.episode_id,
            reconnected=True,
            old_url=outcome.old_url,
            new_url=self._page.url or outcome.target_url,
            duration_ms=_elapsed_ms(outcome.started_at),
        )
        if not self._is_current(outcome) or not outcome.settle_success(result):
            return
        # Published with the settle so no later episode can start before it.
        _log_launcher_event(
            logger,
            level=logging.INFO,
            event="reconnection_success",
            page=self._page.name,
            episode=outcome.episode_id,
            new_url=result.new_url,
            duration_ms=result.duration_ms,
        )
        self._events.emit(
            EventNames.RECONNECTION_SUCCESS,
            {
                "pageName": self._page.name,
                "episodeId": outcome.episode_id,
                "oldUrl": result.old_url,
                "newUrl": result.new_url,
                "duration": result.duration_ms,
                "timestamp": _now_iso(),
            },
        )
        try:
            await asyncio.wait_for(self._page.apply_role(), timeout=self._config.handshake_timeout)
        except asyncio.TimeoutError:
            logger.warning("Role re-apply timed out page=%s episode=%s", self._page.name, outcome.episode_id)

    async def _rebuild(self, outcome: ReconnectionOutcome) -> None:
        if self._config.stabilize_delay > 0:
            await asyncio.sleep(self._config.stabilize_delay)
        while True:
            generation = outcome.generation
            if self._closed or self._page.is_closed():
                raise PageClosedError(f"Page {self._page.name} closed", episode_id=outcome.episode_id)
            try:
                await self._rebuild_once(outcome)
            except Exception as exc:
                if outcome.generation == generation or self._page.is_closed():
                    raise
                logger.debug(
                    "Rebuild attempt lost to navigation page=%s episode=%s error=%s",
                    self._page.name,
                    outcome.episode_id,
                    exc,
                )
            else:
                if outcome.generation == generation:
                    return
            _log_launcher_event(
                logger,
                level=logging.INFO,
                event="reconnection_restart",
                page=self._page.name,
                episode=outcome.episode_id,
                new_url=outcome.target_url,
            )

    async def _rebuild_once(self, outcome: ReconnectionOutcome) -> None:
        outcome.transition(ReconnectionState.RECONNECT_STARTED)
        session = self._page.session
        if session is not None:
            try:
                session.close()
            except Exception as exc:
                logger.debug("Session close failed page=%s error=%s", self._page.name, exc)

        await self._page.inject_scripts()
        outcome.transition(ReconnectionState.BRIDGE_READY)

        await self._page.reinject_connector()
        outcome.transition(ReconnectionState.CONNECTOR_REINJECTED)

        outcome.transition(ReconnectionState.HANDSHAKING)
        try:
            await asyncio.wait_for(
                self._page.handshake(apply_role=False),
                timeout=self._config.handshake_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise HandshakeTimeoutError(timeout=self._config.handshake_timeout) from exc

    def _is_current(self, outcome: ReconnectionOutcome) -> bool:
        if self.current is outcome:
            return True
        logger.debug("Stale episode ignored page=%s episode=%s", self._page.name, outcome.episode_id)
        return False

    def _classify_failure(self, exc: BaseException, outcome: ReconnectionOutcome) -> ReconnectionError:
        if isinstance(exc, PageClosedError):
            return exc
        if is_page_closed_error(exc) or self._page.is_closed():
            error: ReconnectionError = PageClosedError(
                f"Page closed during reconnection: {exc}",
                episode_id=outcome.episode_id,
            )
        elif isinstance(exc, HandshakeTimeoutError):
            error = ReconnectionTimeoutError(
                str(exc),
                reason="handshake-timeout",
                episode_id=outcome.episode_id,
            )
        elif isinstance(exc, ReconnectionError):
            return exc
        else:
            error = ReconnectionError(
                f"Reconnection failed: {exc}",
                reason="error",
                episode_id=outcome.episode_id,
            )
        error.__cause__ = exc
        return error

    def _fail(self, outcome: ReconnectionOutcome, error: ReconnectionError) -> None:
        if not outcome.settle_failure(error):
            return
        # No live session is left behind a failed rebuild.
        self._page.update_lifecycle(PageLifecycle.INITIALIZED, episode=outcome.episode_id, reason=error.reason)
        benign = isinstance(error, PageClosedError)
        _log_launcher_event(
            logger,
            level=logging.INFO if benign else logging.ERROR,
            event="reconnection_error",
            page=self._page.name,
            episode=outcome.episode_id,
            reason=error.reason,
            error=str(error),
        )
        self._events.emit(
            EventNames.RECONNECTION_ERROR,
            {
                "pageName": self._page.name,
                "episodeId": outcome.episode_id,
                "error": str(error),
                "reason": error.reason,
            },
        )
