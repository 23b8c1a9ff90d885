# logger.py
import logging
import logging.config
import os
from typing import Any, Dict, Optional

from clisk_launcher.util.file_utils import from_json_or_yaml

ROOT_NAMESPACE = "clisk_launcher"

# Per-namespace levels for each preset. Namespaces not listed inherit the root level.
LOG_PRESETS: Dict[str, Dict[str, str]] = {
    "EXTREME": {
        ROOT_NAMESPACE: "DEBUG",
    },
    "FULL": {
        ROOT_NAMESPACE: "DEBUG",
        f"{ROOT_NAMESPACE}.rpc": "INFO",
    },
    "NORMAL": {
        ROOT_NAMESPACE: "INFO",
        f"{ROOT_NAMESPACE}.page": "WARNING",
        f"{ROOT_NAMESPACE}.rpc": "WARNING",
    },
    "QUIET": {
        ROOT_NAMESPACE: "WARNING",
        f"{ROOT_NAMESPACE}.page": "ERROR",
        f"{ROOT_NAMESPACE}.rpc": "ERROR",
    },
}

DEFAULT_PRESET = "NORMAL"


def build_preset_config(preset: Optional[str] = None) -> Dict[str, Any]:
    """
    Build a dictConfig mapping for a named preset.

    Unknown preset names fall back to NORMAL.
    """
    name = (preset or os.getenv("CLISK_LOG_LEVEL") or DEFAULT_PRESET).strip().upper()
    levels = LOG_PRESETS.get(name, LOG_PRESETS[DEFAULT_PRESET])
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            namespace: {"level": level, "handlers": ["console"], "propagate": False}
            if namespace == ROOT_NAMESPACE
            else {"level": level}
            for namespace, level in levels.items()
        },
    }


def setup_logging(
    config_file_path=None,
    preset=None,
    verbose=False,
):
    """
    Loads logging config from 'config_file_path' (YAML or JSON) and sets up logging.
    Without a file the named preset (or CLISK_LOG_LEVEL) is applied instead.
    'verbose' forces the package logger to DEBUG.
    """
    if config_file_path:
        config = from_json_or_yaml(config_file_path)
    else:
        config = build_preset_config(preset)

    logging.config.dictConfig(config)

    if verbose:
        logging.getLogger(ROOT_NAMESPACE).setLevel(logging.DEBUG)

    return logging.getLogger(ROOT_NAMESPACE)
