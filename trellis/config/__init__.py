"""
Trellis Configuration - TOML-based settings and plugin declarations.

Example usage:
    from trellis.config import load_config

    settings, specs = load_config(Path("trellis.toml"))
    print(settings.max_concurrent_tasks)
"""

from trellis.config.schema import SETTINGS_SCHEMA, ConfigField, ValidationError
from trellis.config.settings import (
    DEFAULT_CONFIG_FILE,
    ConfigError,
    Settings,
    load_config,
    plugin_specs,
    write_default_config,
)

__all__ = [
    "SETTINGS_SCHEMA",
    "ConfigField",
    "ValidationError",
    "DEFAULT_CONFIG_FILE",
    "ConfigError",
    "Settings",
    "load_config",
    "plugin_specs",
    "write_default_config",
]
