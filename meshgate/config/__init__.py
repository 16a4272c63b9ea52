"""Configuration module for meshgate."""

from meshgate.config.loader import apply_overrides, get_config_path, load_config, save_config
from meshgate.config.schema import CloudConfig, Config

__all__ = [
    "CloudConfig",
    "Config",
    "apply_overrides",
    "get_config_path",
    "load_config",
    "save_config",
]
