from __future__ import annotations

import logging
from typing import Awaitable, Dict, Optional

from clisk_launcher.config import LauncherConfig
from clisk_launcher.event import EventHub
from clisk_launcher.navigation import (
    NavigationMonitor,
    ReconnectionCoordinator,
    ReconnectionResult,
)
from clisk_launcher.page import CliskPage
from clisk_launcher.rpc.session import LocalMethod

logger = logging.getLogger(__name__)


class WorkerService:
    """Navigation monitoring and session rebuild for the worker page."""

    def __init__(
        self,
        page: CliskPage,
        *,
        events: EventHub,
        config: Optional[LauncherConfig] = None,
    ) -> None:
        cfg = config or LauncherConfig()
        self.page = page
        self.monitor = NavigationMonitor(page, events=events)
        self.coordinator = ReconnectionCoordinator(
            page,
            self.monitor,
            events=events,
            config=cfg.reconnection,
        )

    def local_methods(self) -> Dict[str, LocalMethod]:
        return {}

    @property
    def is_monitoring(self) -> bool:
        return self.monitor.enabled

    @property
    def is_reconnecting(self) -> bool:
        return self.coordinator.in_progress

    def enable_url_monitoring(self) -> None:
        if self.monitor.enabled:
            logger.debug("URL monitoring already enabled page=%s", self.page.name)
            return
        if self.page.page is None:
            logger.warning("Cannot enable URL monitoring, page not available page=%s", self.page.name)
            return
        self.page.monitoring_enabled = True
        self.monitor.enable()

    def disable_url_monitoring(self) -> None:
        self.monitor.disable()

    def get_reconnection_outcome(self) -> Awaitable[ReconnectionResult]:
        return self.coordinator.get_reconnection_outcome()

    def manual_reconnect(self) -> Awaitable[ReconnectionResult]:
        logger.info("Manual reconnection requested page=%s", self.page.name)
        return self.coordinator.manual_reconnect()

    def shutdown(self) -> None:
        self.monitor.disable()
        self.coordinator.shutdown()
