import json

import pytest
import yaml

from clisk_launcher.common.logger import LOG_PRESETS, build_preset_config, setup_logging
from clisk_launcher.common.logging_utils import _render_log_kv
from clisk_launcher.config import LauncherConfig
from clisk_launcher.errors import (
    ContextDestroyedError,
    NavigationPreemptionError,
    PageClosedError,
    URL_CHANGE_DETECTED,
    classify_playwright_error,
    is_context_destroyed_error,
)
from clisk_launcher.event import EventHub
from clisk_launcher.util.file_utils import from_json_or_yaml
from clisk_launcher.util.url_utils import normalize_url


def test_launcher_config_defaults():
    cfg = LauncherConfig()

    assert cfg.handshake.max_attempts == 10
    assert cfg.handshake.attempt_interval == 1.0
    assert cfg.reconnection.handshake_timeout == 10.0
    assert cfg.reconnection.ceiling == 15.0
    assert cfg.command.max_attempts == 3
    assert cfg.browser.context_options["is_mobile"] is True


def test_launcher_config_from_dict_and_env(monkeypatch):
    cfg = LauncherConfig.from_dict(
        {
            "handshake": {"max_attempts": 4, "delay": 0},
            "reconnection": {"ceiling": 20},
            "browser": {"headless": True, "context_options": {"viewport": {"width": 10, "height": 20}}},
            "logging": {"preset": "quiet"},
        }
    )
    assert cfg.handshake.max_attempts == 4
    assert cfg.handshake.delay == 0.0
    assert cfg.reconnection.ceiling == 20.0
    assert cfg.browser.context_options == {"viewport": {"width": 10, "height": 20}}
    assert cfg.log_preset == "quiet"

    monkeypatch.setenv("CLISK_HEADLESS", "false")
    monkeypatch.setenv("CLISK_RECONNECT_CEILING_MS", "12000")
    monkeypatch.setenv("CLISK_COMMAND_MAX_ATTEMPTS", "oops")
    cfg = LauncherConfig.from_env(cfg)

    assert cfg.browser.headless is False
    assert cfg.reconnection.ceiling == 12.0
    assert cfg.command.max_attempts == 3


def test_from_json_or_yaml(tmp_path):
    json_file = tmp_path / "config.json"
    json_file.write_text(json.dumps({"navigation_settle": 1}), encoding="utf-8")
    yaml_file = tmp_path / "config.yaml"
    yaml_file.write_text(yaml.safe_dump({"command": {"max_attempts": 5}}), encoding="utf-8")

    assert from_json_or_yaml(json_file) == {"navigation_settle": 1}
    assert from_json_or_yaml(yaml_file) == {"command": {"max_attempts": 5}}
    with pytest.raises(FileNotFoundError):
        from_json_or_yaml(tmp_path / "absent.yaml")
    text_file = tmp_path / "config.txt"
    text_file.write_text("a: 1", encoding="utf-8")
    with pytest.raises(ValueError):
        from_json_or_yaml(text_file)


def test_log_presets_map_namespaces():
    quiet = build_preset_config("quiet")
    unknown = build_preset_config("LOUD")

    assert quiet["loggers"]["clisk_launcher"]["level"] == "WARNING"
    assert quiet["loggers"]["clisk_launcher.rpc"] == {"level": "ERROR"}
    assert unknown["loggers"]["clisk_launcher"]["level"] == "INFO"
    assert set(LOG_PRESETS) == {"EXTREME", "FULL", "NORMAL", "QUIET"}


def test_setup_logging_accepts_dictconfig_file(tmp_path):
    config_file = tmp_path / "logging.yaml"
    config_file.write_text(
        yaml.safe_dump(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "loggers": {"clisk_test_only": {"level": "ERROR"}},
            }
        ),
        encoding="utf-8",
    )

    logger = setup_logging(config_file_path=str(config_file))

    assert logger.name == "clisk_launcher"


def test_render_log_kv_skips_empty_values():
    rendered = _render_log_kv({"event": "x", "page": "worker", "url": None, "ok": True, "": 1})

    assert rendered == "event=x page=worker ok=true"


@pytest.mark.parametrize(
    "left,right",
    [
        ("https://Example.com/", "https://example.com"),
        ("https://example.com:443/a/", "https://example.com/a"),
        ("https://example.com/a#top", "https://example.com/a"),
        ("about:blank", "about:blank"),
    ],
)
def test_normalize_url_equivalences(left, right):
    assert normalize_url(left) == normalize_url(right)


def test_normalize_url_keeps_query_and_ports():
    assert normalize_url("https://example.com/a?b=1") != normalize_url("https://example.com/a")
    assert normalize_url("http://example.com:8080/") == "http://example.com:8080"


def test_playwright_errors_are_classified():
    destroyed = classify_playwright_error(
        Exception("Execution context was destroyed, most likely because of a navigation")
    )
    closed = classify_playwright_error(Exception("Target page, context or browser has been closed"))
    other = ValueError("nope")

    assert isinstance(destroyed, ContextDestroyedError)
    assert isinstance(destroyed, NavigationPreemptionError)
    assert destroyed.code == URL_CHANGE_DETECTED
    assert isinstance(closed, PageClosedError)
    assert classify_playwright_error(other) is other
    assert not is_context_destroyed_error(PageClosedError())


@pytest.mark.asyncio
async def test_event_hub_one_shot_waiters_and_failing_handlers():
    hub = EventHub()
    seen = []

    def broken(data):
        raise RuntimeError("handler bug")

    hub.subscribe("url-change", broken)
    unsubscribe = hub.subscribe("url-change", seen.append)
    waiter = hub.wait_for("url-change", lambda data: data.get("pageName") == "worker")

    hub.emit("url-change", {"pageName": "pilot"})
    assert not waiter.done()
    hub.emit("url-change", {"pageName": "worker"})

    assert (await waiter) == {"pageName": "worker"}
    assert len(seen) == 2
    unsubscribe()
    assert hub.subscriber_count("url-change") == 1
