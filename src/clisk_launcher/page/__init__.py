from .clisk_page import CliskPage, PageLifecycle
from .connector_loader import ConnectorManifest, ConnectorRef, load_connector, read_connector

__all__ = [
    "CliskPage",
    "ConnectorManifest",
    "ConnectorRef",
    "PageLifecycle",
    "load_connector",
    "read_connector",
]
