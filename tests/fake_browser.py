"""In-memory stand-ins for Playwright pages; the page side speaks the post-me protocol."""

import asyncio
import itertools
from collections import defaultdict

from clisk_launcher.config import (
    CommandConfig,
    HandshakeConfig,
    LauncherConfig,
    ReconnectionConfig,
)
from clisk_launcher.event import EventHub
from clisk_launcher.page import CliskPage, ConnectorManifest
from clisk_launcher.page.bridge_script import BRIDGE_SCRIPT
from clisk_launcher.rpc.bridge import POST_MESSAGE_SCRIPT, SEND_FUNCTION
from clisk_launcher.services import WorkerService


def fast_config(**overrides):
    cfg = LauncherConfig(
        handshake=HandshakeConfig(max_attempts=5, attempt_interval=0.01, delay=0.0),
        reconnection=ReconnectionConfig(stabilize_delay=0.0, handshake_timeout=0.3, ceiling=0.6),
        command=CommandConfig(max_attempts=3, pre_call_delay=0.0, outcome_wait_timeout=0.5),
        navigation_settle=0.0,
    )
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


class FakeFrame:
    def __init__(self, page):
        self.page = page

    @property
    def url(self):
        return self.page.url


class FakeConsoleMessage:
    def __init__(self, type, text):
        self.type = type
        self.text = text


class FakePage:
    """
    Page double. ``connector_ready`` mirrors whether the connector script runs
    in the current document; only then are handshake offers answered.
    """

    def __init__(self, remote_methods=None):
        self.url = "about:blank"
        self.main_frame = FakeFrame(self)
        self.handlers = defaultdict(list)
        self.exposed = {}
        self.init_scripts = []
        self.script_tags = []
        self.bridge_evaluations = 0
        self.goto_calls = []
        self.closed = False
        self.responsive = True
        self.connector_ready = False
        self.document = 0
        self.sessions = set()
        self.held_methods = set()
        self.held_calls = []
        self.remote_calls = []
        self.received_events = []
        self.role_calls = []
        self.evaluate_errors = []
        self.remote_methods = {
            "ping": lambda: "pong",
            "setContentScriptType": self._set_role,
        }
        self.remote_methods.update(remote_methods or {})
        self._host_requests = itertools.count(1)
        self._host_pending = {}

    def _set_role(self, role):
        self.role_calls.append(role)
        return True

    def on(self, event, handler):
        self.handlers[event].append(handler)

    def emit_console(self, type, text):
        for handler in list(self.handlers["console"]):
            handler(FakeConsoleMessage(type, text))

    def is_closed(self):
        return self.closed

    async def close(self):
        self.closed = True

    async def expose_function(self, name, callback):
        if name in self.exposed:
            raise Exception(f'Function "{name}" has been already registered')
        self.exposed[name] = callback

    async def add_init_script(self, script=None):
        self.init_scripts.append(script)

    async def add_script_tag(self, content=None):
        self._check_open()
        self.script_tags.append(content)
        self.connector_ready = True

    async def goto(self, url):
        self._check_open()
        self.goto_calls.append(url)
        self.navigate_to(url)

    def navigate_to(self, url):
        """Replace the document, as a real navigation or redirect would."""
        self.url = url
        self.document += 1
        self.connector_ready = False
        self.sessions.clear()
        self.held_calls.clear()
        for handler in list(self.handlers["framenavigated"]):
            handler(self.main_frame)

    async def evaluate(self, script, arg=None):
        self._check_open()
        if self.evaluate_errors:
            raise self.evaluate_errors.pop(0)
        if script == POST_MESSAGE_SCRIPT:
            self._deliver(arg)
            return True
        if script == BRIDGE_SCRIPT:
            self.bridge_evaluations += 1
            return True
        return True

    def _check_open(self):
        if self.closed:
            raise Exception("Target page, context or browser has been closed")

    def _send_to_host(self, message):
        asyncio.get_running_loop().call_soon(self.exposed[SEND_FUNCTION], message)

    def _deliver(self, message):
        if not self.connector_ready:
            return
        action = message.get("action")
        session_id = message.get("sessionId")
        if action == "handshake-request":
            if not self.responsive:
                return
            self.sessions.add(session_id)
            self._send_to_host(
                {"type": "@post-me", "action": "handshake-response", "sessionId": session_id}
            )
        elif action == "call":
            if session_id not in self.sessions:
                return
            self._handle_call(message)
        elif action == "event":
            self.received_events.append((message.get("eventName"), message.get("payload")))
        elif action == "response":
            future = self._host_pending.pop(message.get("requestId"), None)
            if future is not None and not future.done():
                future.set_result(message)

    def _handle_call(self, message):
        method_name = message["methodName"]
        args = message.get("args") or []
        self.remote_calls.append((method_name, list(args)))
        if method_name in self.held_methods:
            self.held_calls.append(message)
            return
        reply = {
            "type": "@post-me",
            "action": "response",
            "sessionId": message["sessionId"],
            "requestId": message["requestId"],
        }
        method = self.remote_methods.get(method_name)
        if method is None:
            reply["error"] = {"name": "Error", "message": f"method {method_name} not found"}
        else:
            try:
                reply["result"] = method(*args)
            except Exception as exc:
                reply["error"] = {"name": type(exc).__name__, "message": str(exc)}
        self._send_to_host(reply)

    def release_held(self):
        held, self.held_calls = self.held_calls, []
        self.held_methods.clear()
        for message in held:
            self._handle_call(message)

    def emit_to_host(self, event_name, payload):
        session_id = next(iter(self.sessions))
        self._send_to_host(
            {
                "type": "@post-me",
                "action": "event",
                "sessionId": session_id,
                "eventName": event_name,
                "payload": payload,
            }
        )

    async def call_host(self, method_name, *args):
        """Invoke a host local method the way the connector would."""
        session_id = next(iter(self.sessions))
        request_id = next(self._host_requests)
        future = asyncio.get_running_loop().create_future()
        self._host_pending[request_id] = future
        self._send_to_host(
            {
                "type": "@post-me",
                "action": "call",
                "sessionId": session_id,
                "requestId": request_id,
                "methodName": method_name,
                "args": list(args),
            }
        )
        return await future


class FakeContext:
    def __init__(self, pages=None):
        self.pages = list(pages or [])
        self.created = []
        self.closed = False

    async def new_page(self):
        page = self.pages.pop(0) if self.pages else FakePage()
        self.created.append(page)
        return page

    async def close(self):
        self.closed = True


async def fake_loader(page, connector_path):
    await page.add_script_tag(content=f"/* {connector_path} */")
    return ConnectorManifest(name="test-connector", version="1.0.0")


async def build_worker(config=None, remote_methods=None, hub=None):
    """A handshaken, monitored worker page backed by a FakePage."""
    hub = hub or EventHub()
    cfg = config or fast_config()
    fake = FakePage(remote_methods)
    page = CliskPage(FakeContext([fake]), "worker", events=hub, config=cfg)
    await page.init()
    await page.load_connector("connectors/test", loader=fake_loader)
    service = WorkerService(page, events=hub, config=cfg)
    service.enable_url_monitoring()
    await page.handshake(role="worker")
    return hub, fake, page, service
