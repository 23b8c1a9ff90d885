"""Page session: one browser page, its bridge and its current RPC session."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from clisk_launcher.common.logging_utils import _log_launcher_event
from clisk_launcher.config import LauncherConfig
from clisk_launcher.errors import PageClosedError, is_page_closed_error
from clisk_launcher.event import EventHub, EventNames
from clisk_launcher.rpc import PageBridge, Session, handshake
from clisk_launcher.rpc.session import LocalMethod
from clisk_launcher.util.time_utils import _now_iso

from .bridge_script import BRIDGE_SCRIPT
from .connector_loader import ConnectorLoader, ConnectorManifest, ConnectorRef, load_connector

logger = logging.getLogger(__name__)

SET_ROLE_METHOD = "setContentScriptType"


class PageLifecycle(str, Enum):
    INITIALIZED = "initialized"
    NAVIGATING = "navigating"
    HANDSHAKING = "handshaking"
    READY = "ready"
    CLOSED = "closed"


class CliskPage:
    """
    Owns one page of the browser context.

    Host functions are exposed once per page. Script injection and connector
    injection may run any number of times. ``session`` is replaced only after
    a new handshake completes, so readers always see a whole session.
    """

    def __init__(
        self,
        context: Any,
        name: str,
        *,
        events: Optional[EventHub] = None,
        config: Optional[LauncherConfig] = None,
    ) -> None:
        self.name = name
        self._context = context
        self._events = events or EventHub()
        self._config = config or LauncherConfig()
        self.page: Any = None
        self.bridge: Optional[PageBridge] = None
        self.session: Optional[Session] = None
        self.connector: Optional[ConnectorRef] = None
        self.manifest: Optional[ConnectorManifest] = None
        self.monitoring_enabled = False
        self.role: Optional[str] = None
        self.lifecycle = PageLifecycle.INITIALIZED
        self._extra_methods: Dict[str, LocalMethod] = {}
        self._init_script_registered = False
        self._console_logger = logging.getLogger(f"clisk_launcher.page.{name}")

    @property
    def url(self) -> str:
        if self.page is None:
            return ""
        return str(getattr(self.page, "url", "") or "")

    def update_lifecycle(self, lifecycle: PageLifecycle, **fields: Any) -> None:
        if self.lifecycle == PageLifecycle.CLOSED and lifecycle != PageLifecycle.CLOSED:
            return
        self.lifecycle = lifecycle
        _log_launcher_event(
            logger,
            level=logging.DEBUG,
            event="page_lifecycle",
            page=self.name,
            lifecycle=lifecycle.value,
            **fields,
        )

    def is_closed(self) -> bool:
        if self.lifecycle == PageLifecycle.CLOSED or self.page is None:
            return True
        try:
            return bool(self.page.is_closed())
        except Exception:
            return True

    def _require_page(self) -> Any:
        if self.page is None or self.lifecycle == PageLifecycle.CLOSED:
            raise PageClosedError(f"Page {self.name} is not available")
        return self.page

    async def init(self) -> Any:
        if self.page is not None:
            return self.page
        try:
            self.page = await self._context.new_page()
        except Exception as exc:
            logger.error("Page creation failed page=%s error=%s", self.name, exc)
            raise
        self.page.on("console", self._on_console)
        self.bridge = PageBridge(self.page, self.name)
        await self.bridge.expose()
        await self.inject_scripts()
        self.update_lifecycle(PageLifecycle.INITIALIZED)
        return self.page

    async def inject_scripts(self) -> None:
        page = self._require_page()
        if not self._init_script_registered:
            await page.add_init_script(script=BRIDGE_SCRIPT)
            self._init_script_registered = True
        await page.evaluate(BRIDGE_SCRIPT)

    async def navigate(self, url: str) -> None:
        page = self._require_page()
        self.update_lifecycle(PageLifecycle.NAVIGATING, url=url)
        try:
            await page.goto(url)
        except Exception as exc:
            logger.warning("Navigation failed page=%s url=%s error=%s", self.name, url, exc)
            raise
        if self._config.navigation_settle > 0:
            await asyncio.sleep(self._config.navigation_settle)
        if self.session is None:
            self.update_lifecycle(PageLifecycle.INITIALIZED)
        elif not self.session.closed:
            self.update_lifecycle(PageLifecycle.READY)

    async def load_connector(
        self,
        connector_path: str,
        *,
        loader: ConnectorLoader = load_connector,
        enable_auto_reconnect: bool = True,
    ) -> ConnectorManifest:
        page = self._require_page()
        self.connector = ConnectorRef(path=connector_path, loader=loader)
        self.monitoring_enabled = enable_auto_reconnect
        self.manifest = await loader(page, connector_path)
        _log_launcher_event(
            logger,
            level=logging.INFO,
            event="connector_loaded",
            page=self.name,
            connector=self.manifest.name,
            version=self.manifest.version,
        )
        return self.manifest

    async def reinject_connector(self) -> Optional[ConnectorManifest]:
        if self.connector is None:
            return None
        page = self._require_page()
        self.manifest = await self.connector.loader(page, self.connector.path)
        return self.manifest

    def add_local_methods(self, methods: Mapping[str, LocalMethod]) -> None:
        self._extra_methods.update(methods)

    def local_methods(self) -> Dict[str, LocalMethod]:
        methods: Dict[str, LocalMethod] = {
            "ping": self._ping,
            "log": self._log,
            "getPageInfo": self._get_page_info,
            "simulateResponse": self._simulate_response,
        }
        methods.update(self._extra_methods)
        return methods

    async def handshake(
        self,
        local_methods: Optional[Mapping[str, LocalMethod]] = None,
        role: Optional[str] = None,
        *,
        apply_role: bool = True,
    ) -> Session:
        if self.bridge is None:
            raise PageClosedError(f"Page {self.name} is not initialized")
        self._require_page()
        if local_methods:
            self.add_local_methods(local_methods)
        if role is not None:
            self.role = role
        self.update_lifecycle(PageLifecycle.HANDSHAKING, role=self.role)
        handshake_cfg = self._config.handshake
        if handshake_cfg.delay > 0:
            await asyncio.sleep(handshake_cfg.delay)
        session = await handshake(
            self.bridge,
            self.local_methods(),
            max_attempts=handshake_cfg.max_attempts,
            attempt_interval=handshake_cfg.attempt_interval,
        )
        previous = self.session
        self.session = session
        if previous is not None:
            previous.close()
        session.add_event_listener(EventNames.TEST_EVENT, self._on_test_event)
        if apply_role:
            await self.apply_role()
        await self._announce_ready(session)
        self.update_lifecycle(PageLifecycle.READY, session_id=session.session_id)
        self._events.emit(
            EventNames.CONNECTION_SUCCESS,
            {"pageName": self.name, "sessionId": session.session_id, "role": self.role},
        )
        return session

    async def apply_role(self) -> bool:
        """Tell the page script its role; failures are logged, never raised."""
        session = self.session
        if session is None or self.role is None:
            return False
        try:
            await session.call(SET_ROLE_METHOD, self.role)
        except Exception as exc:
            logger.warning(
                "Could not set content script type page=%s role=%s error=%s",
                self.name,
                self.role,
                exc,
            )
            return False
        return True

    async def close(self) -> None:
        if self.lifecycle == PageLifecycle.CLOSED:
            return
        self.update_lifecycle(PageLifecycle.CLOSED)
        session = self.session
        if session is not None:
            session.close(PageClosedError(f"Page {self.name} closed"))
        page = self.page
        if page is None:
            return
        try:
            if not page.is_closed():
                await page.close()
        except Exception as exc:
            if not is_page_closed_error(exc):
                logger.warning("Page close failed page=%s error=%s", self.name, exc)

    async def _announce_ready(self, session: Session) -> None:
        try:
            await session.emit(
                EventNames.PLAYWRIGHT_READY,
                {"pageName": self.name, "timestamp": _now_iso()},
            )
        except Exception as exc:
            logger.debug("Ready event not delivered page=%s error=%s", self.name, exc)

    def _on_test_event(self, payload: Any) -> None:
        logger.info("Test event received page=%s payload=%s", self.name, payload)

    def _on_console(self, message: Any) -> None:
        kind = str(getattr(message, "type", "log"))
        text = str(getattr(message, "text", ""))
        if kind == "error":
            self._console_logger.warning("[console.%s] %s", kind, text)
        else:
            self._console_logger.debug("[console.%s] %s", kind, text)

    def _ping(self) -> str:
        return f"pong from {self.name}"

    def _log(self, level: Any = "info", *args: Any) -> bool:
        text = " ".join(str(arg) for arg in args)
        if str(level).lower() == "error":
            self._console_logger.error("%s", text)
        else:
            self._console_logger.info("%s", text)
        return True

    def _get_page_info(self) -> Dict[str, Any]:
        return {"pageName": self.name, "timestamp": _now_iso(), "status": "ready"}

    def _simulate_response(self, data: Any = None) -> Any:
        return data
