"""Orchestrator-owned subscriber lists for launcher lifecycle events."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Any]
Predicate = Callable[[Dict[str, Any]], bool]


class EventHub:
    """
    Synchronous fan-out of named events to subscribers.

    Handlers run inline in emit order. A handler returning an awaitable is
    scheduled as a task; its failure is logged, never raised into the emitter.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Handler]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        self._subscribers.setdefault(name, []).append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(name, handler)

        return _unsubscribe

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._subscribers.get(name)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            self._subscribers.pop(name, None)

    def subscriber_count(self, name: str) -> int:
        return len(self._subscribers.get(name) or ())

    def emit(self, name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        data = dict(payload or {})
        for handler in list(self._subscribers.get(name) or ()):
            try:
                result = handler(data)
            except Exception:
                logger.exception("Event handler failed event=%s", name)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)

    def wait_for(self, name: str, predicate: Optional[Predicate] = None) -> "asyncio.Future[Dict[str, Any]]":
        """One-shot listener: a future resolved by the next matching event."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Dict[str, Any]] = loop.create_future()

        def _handler(data: Dict[str, Any]) -> None:
            if future.done():
                return
            if predicate is not None and not predicate(data):
                return
            future.set_result(data)
            self.unsubscribe(name, _handler)

        self.subscribe(name, _handler)
        future.add_done_callback(lambda _: self.unsubscribe(name, _handler))
        return future

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async event handler failed: %s", exc, exc_info=exc)
