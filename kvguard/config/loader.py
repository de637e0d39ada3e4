"""Configuration loading and saving (camelCase JSON on disk)."""

import json
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from kvguard.config.schema import Config
from kvguard.utils.helpers import atomic_write_text, get_data_path

# Keys directly under these maps are model ids ("ollama/llama3.1") and must
# not be case-converted.
VERBATIM_KEY_MAPS = {"models"}
# These subtrees are forwarded to the backend as-is.
OPAQUE_KEYS = {"params"}


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_path() / "config.json"


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _convert(data: Any, convert_key: Callable[[str], str], parent: str | None = None) -> Any:
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            new_key = key if parent in VERBATIM_KEY_MAPS else convert_key(key)
            if new_key in OPAQUE_KEYS:
                result[new_key] = value
            else:
                result[new_key] = _convert(value, convert_key, new_key)
        return result
    if isinstance(data, list):
        return [_convert(item, convert_key) for item in data]
    return data


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case recursively."""
    return _convert(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase recursively."""
    return _convert(data, snake_to_camel)


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file or return defaults.

    A broken file is not fatal: the problem is logged and defaults are used,
    which leaves every policy feature disabled.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValidationError, OSError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Save configuration to file."""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(by_alias=True, exclude_none=True)
    data = convert_to_camel(data)

    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")
