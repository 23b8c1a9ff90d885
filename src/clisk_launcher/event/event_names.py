"""
EventNames: registry of event name constants.

Hub events are published by the page sessions, the navigation monitor and the
reconnection coordinator. Page events travel over the RPC session.

Usage:
    from clisk_launcher.event.event_names import EventNames

    hub.subscribe(EventNames.RECONNECTION_SUCCESS, handler)
"""


class EventNames:
    """Central registry of all event names used by the launcher."""

    # ═══════════════════════════════════════════════════════════════════
    # HUB EVENTS
    # ═══════════════════════════════════════════════════════════════════
    URL_CHANGE = "url-change"
    CONNECTION_SUCCESS = "connection:success"
    RECONNECTION_START = "reconnection:start"
    RECONNECTION_SUCCESS = "reconnection:success"
    RECONNECTION_ERROR = "reconnection:error"

    # ═══════════════════════════════════════════════════════════════════
    # PAGE EVENTS (over the RPC session)
    # ═══════════════════════════════════════════════════════════════════
    PLAYWRIGHT_READY = "playwright-ready"
    TEST_EVENT = "test-event"
    WORKER_EVENT = "workerEvent"
