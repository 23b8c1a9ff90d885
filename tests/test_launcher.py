import asyncio
import json

import pytest

from clisk_launcher import PlaywrightLauncher
from clisk_launcher.errors import CliskError, ConnectorLoadError, PageClosedError
from clisk_launcher.event import EventNames

from fake_browser import FakeContext, FakePage, fast_config


@pytest.fixture
def connector_dir(tmp_path):
    (tmp_path / "main.js").write_text("window.connector = true;", encoding="utf-8")
    (tmp_path / "manifest.konnector").write_text(
        json.dumps({"name": "template", "version": "1.0.0", "permissions": {}}),
        encoding="utf-8",
    )
    return str(tmp_path)


async def _launcher(connector_dir, pilot_methods=None):
    pilot_fake = FakePage(pilot_methods)
    worker_fake = FakePage()
    launcher = PlaywrightLauncher(fast_config())
    await launcher.init(connector_dir, context=FakeContext([pilot_fake, worker_fake]))
    return launcher, pilot_fake, worker_fake


@pytest.mark.asyncio
async def test_init_links_pilot_and_worker(connector_dir):
    launcher, pilot_fake, worker_fake = await _launcher(connector_dir)

    assert launcher.is_ready()
    assert pilot_fake.role_calls == ["pilot"]
    assert worker_fake.role_calls == ["worker"]
    assert pilot_fake.script_tags == ["window.connector = true;"]
    assert launcher.worker_page.manifest.name == "template"
    assert launcher.worker_service.is_monitoring
    assert launcher.pilot_page.monitoring_enabled is False
    assert pilot_fake.handlers["framenavigated"] == []
    assert "setWorkerState" in launcher.pilot_page.local_methods()

    await launcher.stop()


@pytest.mark.asyncio
async def test_start_asks_pilot_to_authenticate(connector_dir):
    received = []

    def ensure_authenticated(options):
        received.append(options)
        return True

    launcher, pilot_fake, worker_fake = await _launcher(
        connector_dir,
        {"ensureAuthenticated": ensure_authenticated},
    )

    assert await launcher.start() is True
    assert received == [{"account": {}}]

    await launcher.stop()


@pytest.mark.asyncio
async def test_start_requires_initialization():
    launcher = PlaywrightLauncher(fast_config())

    with pytest.raises(CliskError):
        await launcher.start()


@pytest.mark.asyncio
async def test_pilot_drives_worker_through_host_commands(connector_dir):
    launcher, pilot_fake, worker_fake = await _launcher(connector_dir)

    pong = await pilot_fake.call_host("runInWorker", "ping")
    state = await pilot_fake.call_host("setWorkerState", {"url": "https://example.com/"})
    again = await pilot_fake.call_host("runInWorker", "ping")

    assert pong["result"] == "pong"
    assert state["result"]["success"] is True
    assert worker_fake.goto_calls[-1] == "https://example.com/"
    assert again["result"] == "pong"
    assert launcher.is_ready()

    await launcher.stop()


@pytest.mark.asyncio
async def test_worker_events_reach_pilot_across_reconnection(connector_dir):
    launcher, pilot_fake, worker_fake = await _launcher(connector_dir)

    worker_fake.emit_to_host(EventNames.WORKER_EVENT, {"step": 1})
    await asyncio.sleep(0.02)

    worker_fake.navigate_to("https://example.com/")
    await launcher.worker_service.get_reconnection_outcome()
    worker_fake.emit_to_host(EventNames.WORKER_EVENT, {"step": 2})
    await asyncio.sleep(0.02)

    forwarded = [payload for name, payload in pilot_fake.received_events if name == EventNames.WORKER_EVENT]
    assert forwarded == [{"step": 1}, {"step": 2}]

    await launcher.stop()


@pytest.mark.asyncio
async def test_stop_during_reconnection_rejects_commands_with_page_closed(connector_dir):
    launcher, pilot_fake, worker_fake = await _launcher(connector_dir)
    launcher.worker_service.coordinator._config.stabilize_delay = 5.0
    errors = []
    launcher.events.subscribe(EventNames.RECONNECTION_ERROR, errors.append)

    worker_fake.navigate_to("https://example.com/")
    commands = [
        asyncio.ensure_future(launcher.pilot_service.run_in_worker("ping")),
        asyncio.ensure_future(launcher.pilot_service.set_worker_state({"url": "https://example.org/"})),
    ]
    await asyncio.sleep(0.02)
    await launcher.stop()

    results = await asyncio.wait_for(asyncio.gather(*commands, return_exceptions=True), timeout=1.0)
    assert all(isinstance(result, PageClosedError) for result in results)
    assert errors[0]["reason"] == "page-closed"
    assert pilot_fake.closed and worker_fake.closed


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_leaves_external_context_open(connector_dir):
    context = FakeContext([FakePage(), FakePage()])
    launcher = PlaywrightLauncher(fast_config())
    await launcher.init(connector_dir, context=context)

    await launcher.stop()
    await launcher.stop()

    assert not launcher.is_ready()
    assert context.closed is False
    assert all(page.closed for page in context.created)


@pytest.mark.asyncio
async def test_failed_init_cleans_up(tmp_path):
    context = FakeContext([FakePage(), FakePage()])
    launcher = PlaywrightLauncher(fast_config())

    with pytest.raises(ConnectorLoadError):
        await launcher.init(str(tmp_path / "missing"), context=context)

    assert all(page.closed for page in context.created)
    assert not launcher.is_ready()


@pytest.mark.asyncio
async def test_context_manager_stops_launcher(connector_dir):
    context = FakeContext([FakePage(), FakePage()])

    async with PlaywrightLauncher(fast_config()) as launcher:
        await launcher.init(connector_dir, context=context)
        assert launcher.is_ready()

    assert all(page.closed for page in context.created)
