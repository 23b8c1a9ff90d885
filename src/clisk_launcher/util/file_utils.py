import json
from pathlib import Path
from typing import Any, Dict, Union

import yaml


def from_json_or_yaml(filepath: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from a JSON or YAML file based on the file extension.

    Args:
        filepath (str | Path): The path to the configuration file.

    Returns:
        dict: The configuration dictionary.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the extension is unsupported or the content is not a mapping.
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as handle:
        if suffix == ".json":
            data = json.load(handle)
        elif suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(handle)
        else:
            raise ValueError(f"Unsupported configuration format: {suffix}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")
    return data
