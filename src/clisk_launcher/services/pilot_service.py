from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Mapping, Optional

from clisk_launcher.config import LauncherConfig
from clisk_launcher.errors import CliskError, PageClosedError
from clisk_launcher.event import EventHub, EventNames
from clisk_launcher.page import CliskPage
from clisk_launcher.page.bridge_script import BLOCK_INTERACTIONS_SCRIPT, UNBLOCK_INTERACTIONS_SCRIPT
from clisk_launcher.rpc import Session
from clisk_launcher.rpc.session import LocalMethod
from clisk_launcher.util.url_utils import normalize_url

from .command_executor import CommandRetryExecutor
from .worker_service import WorkerService

logger = logging.getLogger(__name__)


class PilotService:
    """
    Commands the pilot's connector may invoke on the host.

    Every command that touches the worker goes through the retry executor and
    reads the worker session at call time.
    """

    def __init__(
        self,
        pilot: CliskPage,
        worker: CliskPage,
        worker_service: WorkerService,
        *,
        events: EventHub,
        config: Optional[LauncherConfig] = None,
    ) -> None:
        cfg = config or LauncherConfig()
        self.pilot = pilot
        self.worker = worker
        self.worker_service = worker_service
        self._config = cfg.command
        self.executor = CommandRetryExecutor(
            worker,
            worker_service.coordinator,
            events=events,
            config=cfg.command,
        )
        self._forwarded_sessions: Dict[Any, Session] = {}
        self._unsubscribe = events.subscribe(EventNames.CONNECTION_SUCCESS, self._on_connection_success)

    def local_methods(self) -> Dict[str, LocalMethod]:
        return {
            "setWorkerState": self.set_worker_state,
            "runInWorker": self.run_in_worker,
            "blockWorkerInteractions": self.block_worker_interactions,
            "unblockWorkerInteractions": self.unblock_worker_interactions,
        }

    def _worker_session(self) -> Session:
        if self.worker.is_closed():
            raise PageClosedError(f"Page {self.worker.name} closed")
        session = self.worker.session
        if session is None:
            raise CliskError("Worker connection not available.")
        return session

    async def run_in_worker(self, method: str, *args: Any) -> Any:
        logger.info("runInWorker method=%s", method)
        if self._config.pre_call_delay > 0:
            await asyncio.sleep(self._config.pre_call_delay)

        async def _call() -> Any:
            return await self._worker_session().call(method, *args)

        return await self.executor.execute(f"runInWorker({method})", _call)

    async def set_worker_state(self, state: Any = None) -> Optional[Dict[str, Any]]:
        url = state.get("url") if isinstance(state, Mapping) else state
        if not url:
            logger.info("setWorkerState called without url, nothing to do")
            return None
        url = str(url)
        started = time.monotonic()
        coordinator = self.worker_service.coordinator

        async def _navigate() -> Dict[str, Any]:
            if normalize_url(self.worker.url) == normalize_url(url):
                logger.info("Worker already at url=%s", url)
                return {
                    "success": True,
                    "url": self.worker.url,
                    "duration": 0,
                    "alreadyAtUrl": True,
                }
            episode_before = coordinator.last_episode_id
            await self.worker.navigate(url)
            result = await coordinator.outcome_since(episode_before)
            logger.info(
                "Worker state set url=%s reconnected=%s episode=%s",
                url,
                result.reconnected,
                result.episode_id,
            )
            return {
                "success": True,
                "url": url,
                "duration": int(round((time.monotonic() - started) * 1000)),
            }

        return await self.executor.execute(f"setWorkerState({url})", _navigate, expected_url=url)

    async def block_worker_interactions(self) -> bool:
        return await self._evaluate_on_worker(BLOCK_INTERACTIONS_SCRIPT, "blockWorkerInteractions")

    async def unblock_worker_interactions(self) -> bool:
        return await self._evaluate_on_worker(UNBLOCK_INTERACTIONS_SCRIPT, "unblockWorkerInteractions")

    async def _evaluate_on_worker(self, script: str, label: str) -> bool:
        if self.worker.is_closed():
            return False
        try:
            return bool(await self.worker.page.evaluate(script))
        except Exception as exc:
            logger.warning("%s failed error=%s", label, exc)
            return False

    def _on_connection_success(self, data: Dict[str, Any]) -> None:
        if data.get("pageName") != self.worker.name:
            return
        session = self.worker.session
        if session is None or session.session_id in self._forwarded_sessions:
            return
        # Only the live session is tracked; closed ones drop their listeners.
        self._forwarded_sessions = {session.session_id: session}
        session.add_event_listener(EventNames.WORKER_EVENT, self._forward_worker_event)

    async def _forward_worker_event(self, payload: Any) -> None:
        session = self.pilot.session
        if session is None or session.closed:
            logger.debug("workerEvent dropped, pilot session unavailable")
            return
        try:
            await session.emit(EventNames.WORKER_EVENT, payload)
        except CliskError as exc:
            logger.warning("workerEvent forwarding failed error=%s", exc)

    def close(self) -> None:
        self._unsubscribe()
        self._forwarded_sessions.clear()
