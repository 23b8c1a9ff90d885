from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from clisk_launcher.event import EventHub, EventNames
from clisk_launcher.page import CliskPage

logger = logging.getLogger(__name__)

BLANK_URL = "about:blank"


@dataclass(frozen=True)
class UrlChangeEvent:
    page_name: str
    old_url: str
    new_url: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pageName": self.page_name,
            "oldUrl": self.old_url,
            "newUrl": self.new_url,
            "timestamp": self.timestamp,
        }


UrlChangeListener = Callable[[UrlChangeEvent], Any]


class NavigationMonitor:
    """
    Watches main-frame navigations of one page.

    The first observation only seeds ``current_url``. Same-URL transitions and
    transitions to ``about:blank`` are filtered. While disabled, transitions
    still update ``current_url`` but produce no event.
    """

    def __init__(self, page: CliskPage, *, events: EventHub) -> None:
        self._page = page
        self._events = events
        self._listeners: List[UrlChangeListener] = []
        self._attached = False
        self.current_url: Optional[str] = None
        self.enabled = False

    def add_listener(self, listener: UrlChangeListener) -> None:
        self._listeners.append(listener)

    def attach(self) -> None:
        if self._attached:
            return
        page = self._page.page
        if page is None:
            raise RuntimeError(f"Page {self._page.name} must be initialized before monitoring")
        page.on("framenavigated", self._on_frame_navigated)
        self.current_url = self._page.url or None
        self._attached = True

    def enable(self) -> None:
        self.attach()
        self.enabled = True
        logger.info("URL monitoring enabled page=%s url=%s", self._page.name, self.current_url)

    def disable(self) -> None:
        self.enabled = False
        logger.info("URL monitoring disabled page=%s", self._page.name)

    def _on_frame_navigated(self, frame: Any) -> None:
        page = self._page.page
        if page is None or frame != page.main_frame:
            return
        self.observe(str(getattr(frame, "url", "") or ""))

    def observe(self, new_url: str) -> Optional[UrlChangeEvent]:
        old_url = self.current_url
        self.current_url = new_url
        if old_url is None or new_url == old_url or new_url == BLANK_URL:
            return None
        event = UrlChangeEvent(page_name=self._page.name, old_url=old_url, new_url=new_url)
        if not self.enabled:
            logger.debug(
                "URL change ignored, monitoring disabled page=%s new_url=%s",
                self._page.name,
                new_url,
            )
            return None
        logger.info(
            "URL change detected page=%s old_url=%s new_url=%s",
            self._page.name,
            old_url,
            new_url,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("URL change listener failed page=%s", self._page.name)
        self._events.emit(EventNames.URL_CHANGE, event.to_dict())
        return event
