from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from clisk_launcher.errors import ApplicationError, CliskError, ContextDestroyedError

from .bridge import PageBridge
from .protocol import (
    CallMessage,
    EventMessage,
    ResponseMessage,
    parse_message,
    serialize_error,
)

logger = logging.getLogger(__name__)

LocalMethod = Callable[..., Any]
EventListener = Callable[[Any], Any]


class Session:
    """
    An established RPC channel with one page context.

    Produced by ``handshake``. Remote calls resolve from ``response`` messages
    carrying this session id; after ``close`` every pending call is rejected
    and new calls fail with ``ContextDestroyedError``.
    """

    def __init__(
        self,
        bridge: PageBridge,
        local_methods: Optional[Mapping[str, LocalMethod]],
        session_id: Any,
    ) -> None:
        self._bridge = bridge
        self.session_id = session_id
        self.local_methods: Dict[str, LocalMethod] = dict(local_methods or {})
        self._pending: Dict[Any, Tuple[str, asyncio.Future]] = {}
        self._listeners: Dict[str, List[EventListener]] = {}
        self._request_ids = itertools.count(1)
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False
        self._remove_bridge_listener = bridge.add_message_listener(self._on_message)

    @property
    def name(self) -> str:
        return self._bridge.name

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_calls(self) -> int:
        return len(self._pending)

    async def call(self, method_name: str, *args: Any) -> Any:
        if self._closed:
            raise ContextDestroyedError(f"Session {self.session_id} is closed")
        request_id = next(self._request_ids)
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (method_name, future)
        message = CallMessage(
            session_id=self.session_id,
            request_id=request_id,
            method_name=method_name,
            args=list(args),
        )
        try:
            await self._bridge.post_message(message.to_wire())
            return await future
        finally:
            self._pending.pop(request_id, None)

    async def emit(self, event_name: str, payload: Any = None) -> None:
        if self._closed:
            raise ContextDestroyedError(f"Session {self.session_id} is closed")
        message = EventMessage(session_id=self.session_id, event_name=event_name, payload=payload)
        await self._bridge.post_message(message.to_wire())

    def add_event_listener(self, event_name: str, listener: EventListener) -> None:
        self._listeners.setdefault(event_name, []).append(listener)

    def close(self, error: Optional[BaseException] = None) -> None:
        if self._closed:
            return
        self._closed = True
        self._remove_bridge_listener()
        self._listeners.clear()
        for method_name, future in list(self._pending.values()):
            if future.done():
                continue
            future.set_exception(
                error or ContextDestroyedError(f"Session closed while calling {method_name}")
            )
        logger.debug("Session closed page=%s session_id=%s", self.name, self.session_id)

    def _on_message(self, raw: Any) -> None:
        if self._closed:
            return
        message = parse_message(raw)
        if message is None or message.session_id != self.session_id:
            return
        if isinstance(message, ResponseMessage):
            self._resolve(message)
        elif isinstance(message, CallMessage):
            task = asyncio.ensure_future(self._handle_call(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif isinstance(message, EventMessage):
            self._dispatch_event(message)

    def _resolve(self, message: ResponseMessage) -> None:
        entry = self._pending.get(message.request_id)
        if entry is None:
            return
        method_name, future = entry
        if future.done():
            return
        if message.error is not None:
            future.set_exception(ApplicationError(method_name, message.error))
        else:
            future.set_result(message.result)

    def _dispatch_event(self, message: EventMessage) -> None:
        for listener in list(self._listeners.get(message.event_name) or ()):
            try:
                result = listener(message.payload)
            except Exception:
                logger.exception("Event listener failed event=%s", message.event_name)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def _handle_call(self, message: CallMessage) -> None:
        result: Any = None
        error: Optional[Dict[str, str]] = None
        method = self.local_methods.get(message.method_name)
        if method is None:
            error = {"name": "MethodNotFound", "message": f"Unknown method: {message.method_name}"}
        else:
            try:
                result = method(*message.args)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:
                logger.warning(
                    "Local method failed page=%s method=%s error=%s",
                    self.name,
                    message.method_name,
                    exc,
                )
                error = serialize_error(exc)
        if self._closed:
            return
        response = ResponseMessage(
            session_id=self.session_id,
            request_id=message.request_id,
            result=result,
            error=error,
        )
        try:
            await self._bridge.post_message(response.to_wire())
        except CliskError as exc:
            logger.debug(
                "Response dropped page=%s method=%s error=%s",
                self.name,
                message.method_name,
                exc,
            )
