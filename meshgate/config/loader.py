"""Configuration loading utilities."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from meshgate.config.schema import Config
from meshgate.utils.helpers import get_data_path

CONFIG_FILE_NAME = "config.json"


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_path() / CONFIG_FILE_NAME


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from a JSON file.

    The file keeps the gateway's historical layout, e.g.
    ``{"cloud": {"uuid": ..., "token": ..., "serverName": ..., "port": ...}}``.
    camelCase keys are accepted and converted to snake_case.

    Raises:
        FileNotFoundError: the file does not exist.
        ValueError: the file is not a JSON object or fails validation.
    """
    path = (config_path or get_config_path()).expanduser()
    with path.open(encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a JSON object")
    return Config.model_validate(convert_keys(data))


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Write configuration as camelCase JSON."""
    path = (config_path or get_config_path()).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = convert_to_camel(config.model_dump(by_alias=True))
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")
    return path


def apply_overrides(
    config: Config,
    *,
    host: str | None = None,
    port: int | None = None,
    proto: str | None = None,
    tty: str | None = None,
) -> Config:
    """Let command-line values win over the file; zero/empty means unset."""
    if host:
        config.cloud.host = host
    if port:
        config.cloud.port = int(port)
    if proto:
        config.proto = proto
    if tty:
        config.tty = tty
    return config


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case recursively."""
    if isinstance(data, dict):
        return {camel_to_snake(str(k)): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase recursively."""
    if isinstance(data, dict):
        return {snake_to_camel(str(k)): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)
