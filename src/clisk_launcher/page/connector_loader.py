"""Connector package loading: ``main.js`` plus a JSON ``manifest.konnector``."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from clisk_launcher.errors import ConnectorLoadError

logger = logging.getLogger(__name__)

CODE_FILENAME = "main.js"
MANIFEST_FILENAME = "manifest.konnector"


class ConnectorManifest(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    version: str = "0.0.0"
    permissions: Union[Dict[str, Any], List[Any]] = Field(default_factory=dict)


ConnectorLoader = Callable[[Any, str], Awaitable[ConnectorManifest]]


@dataclass
class ConnectorRef:
    path: str
    loader: ConnectorLoader


def resolve_connector_dir(connector_path: Union[str, Path]) -> Path:
    return Path(connector_path).expanduser().resolve()


def read_connector(connector_path: Union[str, Path]) -> Tuple[str, ConnectorManifest]:
    """Read the connector code and manifest; raises ``ConnectorLoadError``."""
    base = resolve_connector_dir(connector_path)
    code_file = base / CODE_FILENAME
    manifest_file = base / MANIFEST_FILENAME
    try:
        code = code_file.read_text(encoding="utf-8")
        raw_manifest = manifest_file.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConnectorLoadError(str(base), str(exc)) from exc
    try:
        manifest = ConnectorManifest.model_validate(json.loads(raw_manifest))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConnectorLoadError(str(base), f"invalid {MANIFEST_FILENAME}: {exc}") from exc
    return code, manifest


async def load_connector(page: Any, connector_path: str) -> ConnectorManifest:
    """Inject the connector code into the page's current document."""
    code, manifest = read_connector(connector_path)
    await page.add_script_tag(content=code)
    logger.debug(
        "Connector injected name=%s version=%s path=%s",
        manifest.name,
        manifest.version,
        connector_path,
    )
    return manifest
