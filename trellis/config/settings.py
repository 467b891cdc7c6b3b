"""
Manager settings and plugin declarations loaded from TOML.

Example file:

    [trellis]
    max_concurrent_tasks = 4
    log_level = "info"

    [[plugin]]
    name = "owner/editor-tools"
    depends = ["owner/shared-lib"]
    cmd = ["Tools"]
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import tomlkit

from trellis.config.schema import (
    SETTINGS_SCHEMA,
    ConfigField,
    ValidationError,
    merge_with_defaults,
)
from trellis.config.toml_handler import TOMLError, read_toml, write_toml

SECTION = "trellis"
PLUGIN_TABLE = "plugin"
DEFAULT_CONFIG_FILE = Path("trellis.toml")


class ConfigError(Exception):
    """Raised when a configuration file cannot be turned into settings."""

    pass


@dataclass(frozen=True)
class Settings:
    """
    Validated manager settings.

    Durations are in milliseconds. See SETTINGS_SCHEMA for descriptions.
    """

    max_concurrent_tasks: int = 10
    auto_install: bool = True
    log_level: str = "warn"
    git_timeout: int = 60000
    git_depth: int = 1
    install_retry: bool = False
    retry_attempts: int = 3
    retry_delay: int = 1000
    close_delay: int = 2000
    data_dir: str = ""
    dev_path: str = ""
    remote_url: str = "https://github.com/{}"
    self_name: str = "trellis-pm/trellis"

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "Settings":
        """
        Build settings from a (partial) ``[trellis]`` table.

        Raises:
            ConfigError: If a value is unknown or invalid
        """
        try:
            merged = merge_with_defaults(dict(values), SETTINGS_SCHEMA)
        except ValidationError as e:
            raise ConfigError(f"Invalid [{SECTION}] settings: {e}") from e
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in merged.items() if k in names})

    @property
    def data_root(self) -> Path:
        if self.data_dir:
            return Path(os.path.expanduser(self.data_dir))
        xdg = os.environ.get("XDG_DATA_HOME")
        base = Path(xdg) if xdg else Path.home() / ".local" / "share"
        return base / "trellis"

    @property
    def pack_dir(self) -> Path:
        return self.data_root / "site" / "pack" / "trellis"

    @property
    def start_dir(self) -> Path:
        """Install root of plugins loaded at startup."""
        return self.pack_dir / "start"

    @property
    def opt_dir(self) -> Path:
        """Install root of lazily loaded plugins."""
        return self.pack_dir / "opt"

    @property
    def git_timeout_seconds(self) -> float:
        return self.git_timeout / 1000


def load_config(file_path: Path) -> tuple[Settings, list[dict[str, Any]]]:
    """
    Load settings and plugin declarations from a TOML file.

    A missing file yields default settings and no plugins.

    Returns:
        (settings, plugin specs)

    Raises:
        ConfigError: If the file is malformed
    """
    if not file_path.exists():
        return Settings(), []

    try:
        data = read_toml(file_path)
    except TOMLError as e:
        raise ConfigError(str(e)) from e

    section = data.get(SECTION, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{SECTION}] must be a table")

    return Settings.from_dict(section), plugin_specs(data)


def plugin_specs(data: dict[str, Any]) -> list[dict[str, Any]]:
    """
    Extract ``[[plugin]]`` declarations.

    Raises:
        ConfigError: If the plugin table is not an array of tables with names
    """
    specs = data.get(PLUGIN_TABLE, [])
    if not isinstance(specs, list):
        raise ConfigError(f"'{PLUGIN_TABLE}' must be an array of tables ([[{PLUGIN_TABLE}]])")

    result = []
    for index, spec in enumerate(specs):
        if not isinstance(spec, dict) or not isinstance(spec.get("name"), str):
            raise ConfigError(f"Plugin declaration #{index + 1} needs a string 'name'")
        result.append(dict(spec))
    return result


PLUGIN_EXAMPLE = (
    "[[plugin]]",
    'name = "owner/repo"',
    'depends = ["owner/library"]',
    'ft = ["python"]',
)


def _constraints(field: ConfigField) -> str:
    parts = []
    if field.min is not None:
        parts.append(f"min: {field.min}")
    if field.max is not None:
        parts.append(f"max: {field.max}")
    if field.choices is not None:
        parts.append(f"one of: {', '.join(map(str, field.choices))}")
    return "; ".join(parts)


def default_document() -> tomlkit.TOMLDocument:
    """
    The ``[trellis]`` table at its defaults, each setting preceded by its
    description and constraints, followed by a commented plugin example.
    """
    doc = tomlkit.document()
    doc.add(tomlkit.comment("trellis configuration"))
    doc.add(tomlkit.nl())

    table = tomlkit.table()
    for name, field in SETTINGS_SCHEMA.items():
        if field.description:
            table.add(tomlkit.comment(field.description))
        constraints = _constraints(field)
        if constraints:
            table.add(tomlkit.comment(f"({constraints})"))
        table.add(name, field.default)
        table.add(tomlkit.nl())
    doc.add(SECTION, table)

    doc.add(tomlkit.comment("Plugins are declared as an array of tables:"))
    for line in PLUGIN_EXAMPLE:
        doc.add(tomlkit.comment(line))
    return doc


def write_default_config(file_path: Path) -> None:
    """Write a commented configuration file with every default setting."""
    write_toml(file_path, default_document())
