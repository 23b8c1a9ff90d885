"""Retry wrapper for pilot to worker commands that may be cut by navigation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from clisk_launcher.config import CommandConfig
from clisk_launcher.errors import (
    ApplicationError,
    CommandRetryExhaustedError,
    ContextDestroyedError,
    NavigationPreemptionError,
    PageClosedError,
    is_context_destroyed_error,
    is_page_closed_error,
)
from clisk_launcher.event import EventHub, EventNames
from clisk_launcher.navigation import ReconnectionCoordinator
from clisk_launcher.page import CliskPage
from clisk_launcher.util.url_utils import normalize_url

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_result(task: asyncio.Future) -> None:
    # Abandoned calls may still settle; their outcome is no longer relevant.
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned command settled with error=%s", exc)


class CommandRetryExecutor:
    """
    Runs a command against the target page, retrying across navigations.

    Each attempt first waits for a pending reconnection, then races the
    command against the next URL change of the target page. Preemption and
    context-destroyed failures consume an attempt and wait for the rebuild;
    every other error surfaces unchanged.
    """

    def __init__(
        self,
        target: CliskPage,
        coordinator: ReconnectionCoordinator,
        *,
        events: EventHub,
        config: Optional[CommandConfig] = None,
    ) -> None:
        self._target = target
        self._coordinator = coordinator
        self._events = events
        self._config = config or CommandConfig()

    async def execute(
        self,
        command: str,
        operation: Callable[[], Awaitable[T]],
        *,
        expected_url: Optional[str] = None,
    ) -> T:
        max_attempts = max(1, int(self._config.max_attempts))
        for attempt in range(1, max_attempts + 1):
            logger.debug("Executing command=%s attempt=%s/%s", command, attempt, max_attempts)
            await self._coordinator.get_reconnection_outcome()
            episode_id = self._coordinator.last_episode_id
            try:
                result = await self._race(command, operation, expected_url)
            except NavigationPreemptionError as exc:
                logger.info(
                    "Command preempted by navigation command=%s attempt=%s/%s code=%s",
                    command,
                    attempt,
                    max_attempts,
                    exc.code,
                )
                await self._await_rebuild(episode_id)
                if attempt >= max_attempts:
                    raise CommandRetryExhaustedError(command, attempt) from exc
                continue
            logger.debug("Command completed command=%s attempt=%s", command, attempt)
            return result
        raise CommandRetryExhaustedError(command, max_attempts)

    async def _race(
        self,
        command: str,
        operation: Callable[[], Awaitable[T]],
        expected_url: Optional[str],
    ) -> T:
        expected = normalize_url(expected_url) if expected_url else None

        def _is_preempting(data: Dict[str, Any]) -> bool:
            if data.get("pageName") != self._target.name:
                return False
            return expected is None or normalize_url(str(data.get("newUrl") or "")) != expected

        url_change = self._events.wait_for(EventNames.URL_CHANGE, _is_preempting)
        task = asyncio.ensure_future(operation())
        try:
            done, _ = await asyncio.wait({task, url_change}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if not url_change.done():
                url_change.cancel()

        if task in done:
            try:
                return task.result()
            except (ApplicationError, PageClosedError):
                raise
            except Exception as exc:
                if is_context_destroyed_error(exc) and not is_page_closed_error(exc):
                    if isinstance(exc, NavigationPreemptionError):
                        raise
                    raise ContextDestroyedError(str(exc)) from exc
                raise

        task.add_done_callback(_discard_result)
        change = url_change.result()
        raise NavigationPreemptionError(
            f"URL change detected during {command}: {change.get('oldUrl')} -> {change.get('newUrl')}",
            url=change.get("newUrl"),
        )

    async def _await_rebuild(self, episode_id: int) -> None:
        if self._target.is_closed():
            raise PageClosedError(f"Page {self._target.name} closed")
        coordinator = self._coordinator
        session = self._target.session
        session_dead = session is None or session.closed
        if (
            session_dead
            and not coordinator.in_progress
            and coordinator.last_episode_id == episode_id
            and coordinator.last_failure is not None
        ):
            # The previous rebuild already failed; no new episode will arrive.
            raise coordinator.last_failure
        await coordinator.wait_for_next_outcome(episode_id, self._config.outcome_wait_timeout)
