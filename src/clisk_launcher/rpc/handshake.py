from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

from clisk_launcher.errors import HandshakeTimeoutError, NavigationPreemptionError

from .bridge import PageBridge
from .protocol import HandshakeRequest, HandshakeResponse, new_session_id, parse_message
from .session import LocalMethod, Session

logger = logging.getLogger(__name__)


async def handshake(
    bridge: PageBridge,
    local_methods: Optional[Mapping[str, LocalMethod]] = None,
    *,
    max_attempts: int = 10,
    attempt_interval: float = 1.0,
) -> Session:
    """
    Offer a session to the page until its script answers.

    A request is posted every ``attempt_interval`` seconds; the first
    ``handshake-response`` echoing the session id completes the handshake.
    Raises ``HandshakeTimeoutError`` after ``max_attempts`` unanswered offers.
    """
    session_id = new_session_id()
    accepted: asyncio.Future = asyncio.get_running_loop().create_future()

    def _on_message(raw: Any) -> None:
        message = parse_message(raw)
        if (
            isinstance(message, HandshakeResponse)
            and message.session_id == session_id
            and not accepted.done()
        ):
            accepted.set_result(None)

    remove_listener = bridge.add_message_listener(_on_message)
    try:
        for attempt in range(1, max_attempts + 1):
            try:
                await bridge.post_message(HandshakeRequest(session_id=session_id).to_wire())
            except NavigationPreemptionError as exc:
                # The document is being replaced; the next offer lands in the new one.
                logger.debug(
                    "Handshake offer lost page=%s attempt=%s error=%s",
                    bridge.name,
                    attempt,
                    exc,
                )
            try:
                await asyncio.wait_for(asyncio.shield(accepted), timeout=attempt_interval)
            except asyncio.TimeoutError:
                continue
            logger.debug(
                "Handshake accepted page=%s session_id=%s attempt=%s",
                bridge.name,
                session_id,
                attempt,
            )
            return Session(bridge, local_methods, session_id)
        raise HandshakeTimeoutError(max_attempts, attempt_interval)
    finally:
        remove_listener()
        if not accepted.done():
            accepted.cancel()
