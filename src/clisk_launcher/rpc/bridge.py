"""Raw message transport between the host process and one page's script context."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from clisk_launcher.errors import classify_playwright_error

logger = logging.getLogger(__name__)

SEND_FUNCTION = "sendToPlaywright"
LOG_FUNCTION = "sendPageLog"

POST_MESSAGE_SCRIPT = "message => { window.postMessage(message, '*'); return true; }"

MessageListener = Callable[[Any], None]


class PageBridge:
    """
    Per-page adapter: host functions exposed once, messages posted via evaluate.

    The bridge carries no protocol semantics; listeners receive the raw
    payload the page handed to ``sendToPlaywright``.
    """

    def __init__(self, page: Any, name: str) -> None:
        self._page = page
        self.name = name
        self._listeners: List[MessageListener] = []
        self._exposed = False
        self._page_logger = logging.getLogger(f"clisk_launcher.page.{name}")

    @property
    def page(self) -> Any:
        return self._page

    @property
    def exposed(self) -> bool:
        return self._exposed

    async def expose(self) -> None:
        # Playwright refuses a second registration of the same name on a live page.
        if self._exposed:
            return
        await self._page.expose_function(SEND_FUNCTION, self._receive)
        await self._page.expose_function(LOG_FUNCTION, self._receive_log)
        self._exposed = True
        logger.debug("Host functions exposed page=%s", self.name)

    def add_message_listener(self, listener: MessageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _remove

    async def post_message(self, message: Dict[str, Any]) -> None:
        try:
            await self._page.evaluate(POST_MESSAGE_SCRIPT, message)
        except Exception as exc:
            classified = classify_playwright_error(exc)
            if classified is exc:
                raise
            raise classified from exc

    def _receive(self, message: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Message listener failed page=%s", self.name)

    def _receive_log(self, level: Any = "info", *args: Any) -> None:
        text = " ".join(str(arg) for arg in args)
        if str(level).lower() == "error":
            self._page_logger.error("%s", text)
        else:
            self._page_logger.debug("[%s] %s", level, text)
