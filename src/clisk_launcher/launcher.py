"""
Launcher: a pilot page and a worker page of one browser context, linked to
the host through RPC sessions.

Only the worker is monitored for navigation. The pilot reaches the worker
through the commands of ``PilotService``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from clisk_launcher.common.logging_utils import _log_launcher_event
from clisk_launcher.config import LauncherConfig
from clisk_launcher.errors import CliskError
from clisk_launcher.event import EventHub
from clisk_launcher.navigation import BLANK_URL
from clisk_launcher.page import CliskPage
from clisk_launcher.services import PilotService, WorkerService

logger = logging.getLogger(__name__)

PILOT = "pilot"
WORKER = "worker"


class PlaywrightLauncher:
    def __init__(
        self,
        config: Optional[LauncherConfig] = None,
        *,
        events: Optional[EventHub] = None,
    ) -> None:
        self.config = config or LauncherConfig()
        self.events = events or EventHub()
        self.pilot_page: Optional[CliskPage] = None
        self.worker_page: Optional[CliskPage] = None
        self.pilot_service: Optional[PilotService] = None
        self.worker_service: Optional[WorkerService] = None
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._owns_context = False
        self._ready = False
        self._stopped = False

    async def __aenter__(self) -> "PlaywrightLauncher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def is_ready(self) -> bool:
        if not self._ready or self.pilot_page is None or self.worker_page is None:
            return False
        pilot_session = self.pilot_page.session
        worker_session = self.worker_page.session
        return (
            pilot_session is not None
            and not pilot_session.closed
            and worker_session is not None
            and not worker_session.closed
        )

    async def init(self, connector_path: str, *, context: Any = None) -> None:
        if self._ready:
            return
        try:
            if context is None:
                context = await self._launch_context()
            self._context = context

            pilot = CliskPage(context, PILOT, events=self.events, config=self.config)
            worker = CliskPage(context, WORKER, events=self.events, config=self.config)
            self.pilot_page = pilot
            self.worker_page = worker

            # Host-function exposure must not run on two pages at once.
            await pilot.init()
            await worker.init()

            await asyncio.gather(pilot.navigate(BLANK_URL), worker.navigate(BLANK_URL))
            await asyncio.gather(
                pilot.load_connector(connector_path, enable_auto_reconnect=False),
                worker.load_connector(connector_path),
            )

            self.worker_service = WorkerService(worker, events=self.events, config=self.config)
            self.pilot_service = PilotService(
                pilot,
                worker,
                self.worker_service,
                events=self.events,
                config=self.config,
            )
            pilot.add_local_methods(self.pilot_service.local_methods())
            worker.add_local_methods(self.worker_service.local_methods())
            self.worker_service.enable_url_monitoring()

            await asyncio.gather(
                pilot.handshake(role=PILOT),
                worker.handshake(role=WORKER),
            )
        except Exception:
            logger.error("Launcher initialization failed connector=%s", connector_path)
            await self.stop()
            raise
        self._ready = True
        _log_launcher_event(
            logger,
            level=logging.INFO,
            event="launcher_ready",
            connector=worker.manifest.name if worker.manifest else None,
        )

    async def start(self) -> Any:
        if not self.is_ready():
            raise CliskError("Launcher is not initialized")
        logger.info("Starting connector execution")
        result = await self.pilot_page.session.call("ensureAuthenticated", {"account": {}})
        logger.info("ensureAuthenticated completed result=%s", result)
        return result

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._ready = False

        if self.worker_service is not None:
            self.worker_service.shutdown()
        if self.pilot_service is not None:
            self.pilot_service.close()
        for page in (self.worker_page, self.pilot_page):
            if page is not None:
                await page.close()

        context = self._context
        browser = self._browser
        playwright = self._playwright
        self._context = None
        self._browser = None
        self._playwright = None

        if self._owns_context and context is not None:
            try:
                await context.close()
            except Exception as exc:
                logger.debug("Context close failed error=%s", exc)
        if browser is not None:
            try:
                await browser.close()
            except Exception as exc:
                logger.debug("Browser close failed error=%s", exc)
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as exc:
                logger.debug("Playwright stop failed error=%s", exc)
        logger.info("Launcher stopped")

    async def _launch_context(self) -> Any:
        try:
            from playwright.async_api import async_playwright
        except ImportError as exc:
            raise RuntimeError(
                "playwright is not installed. Install it with: pip install playwright "
                "&& playwright install chromium"
            ) from exc

        browser_cfg = self.config.browser
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=browser_cfg.headless)
        context = await self._browser.new_context(**browser_cfg.context_options)
        self._owns_context = True
        logger.info("Browser started headless=%s", browser_cfg.headless)
        return context
