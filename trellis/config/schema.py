"""
Configuration Schema.

Declares the settings understood by the plugin manager and validates the
``[trellis]`` table of a configuration file against them.

Key features:
- Typed field definitions with min/max and choices constraints
- Defaults merged under user values before validation
- Unknown keys rejected so typos surface early
"""

from dataclasses import dataclass
from typing import Any


class SchemaError(Exception):
    """Raised when a field definition is inconsistent."""

    pass


class ValidationError(SchemaError):
    """Raised when a configured value fails validation."""

    pass


def _is_instance(value: Any, type_: type) -> bool:
    # bool is a subclass of int; a setting declared int must not accept True.
    if type_ in (int, float) and isinstance(value, bool):
        return False
    if type_ is float and isinstance(value, int):
        return True
    return isinstance(value, type_)


@dataclass
class ConfigField:
    """
    A configuration setting with type and constraints.

    Attributes:
        type_: Expected type of the value
        default: Default value
        description: Human-readable description (written as a TOML comment)
        min: Minimum value (numbers) or minimum length (strings)
        max: Maximum value (numbers) or maximum length (strings)
        choices: Allowed values
    """

    type_: type
    default: Any
    description: str = ""
    min: Any = None
    max: Any = None
    choices: list[Any] | None = None

    def __post_init__(self):
        if not _is_instance(self.default, self.type_):
            raise SchemaError(
                f"Default value {self.default!r} does not match type {self.type_.__name__}"
            )
        if self.choices is not None and self.default not in self.choices:
            raise SchemaError(f"Default value {self.default!r} not in choices {self.choices}")

    def validate(self, value: Any) -> None:
        """
        Validate a value against this field.

        Raises:
            ValidationError: If validation fails
        """
        if not _is_instance(value, self.type_):
            raise ValidationError(
                f"Expected type {self.type_.__name__}, got {type(value).__name__}"
            )

        if self.choices is not None and value not in self.choices:
            raise ValidationError(f"Value {value!r} not in allowed choices {self.choices}")

        measured = len(value) if self.type_ is str else value
        if self.type_ in (int, float, str):
            if self.min is not None and measured < self.min:
                raise ValidationError(f"Value {value!r} is below the minimum {self.min}")
            if self.max is not None and measured > self.max:
                raise ValidationError(f"Value {value!r} is above the maximum {self.max}")


SETTINGS_SCHEMA: dict[str, ConfigField] = {
    "max_concurrent_tasks": ConfigField(
        int, 10, "Maximum number of git operations running at once", min=1, max=64
    ),
    "auto_install": ConfigField(bool, True, "Install missing plugins on startup"),
    "log_level": ConfigField(
        str, "warn", "Log verbosity", choices=["debug", "info", "warn", "error"]
    ),
    "git_timeout": ConfigField(int, 60000, "Timeout of every git command in milliseconds", min=1),
    "git_depth": ConfigField(int, 1, "Clone depth for new installs", min=1),
    "install_retry": ConfigField(bool, False, "Retry failed clones with exponential backoff"),
    "retry_attempts": ConfigField(int, 3, "Clone attempts when install_retry is set", min=1),
    "retry_delay": ConfigField(int, 1000, "First retry delay in milliseconds", min=0),
    "close_delay": ConfigField(
        int, 2000, "Delay before the progress view closes, in milliseconds", min=0
    ),
    "data_dir": ConfigField(str, "", "Data directory (empty: ~/.local/share/trellis)"),
    "dev_path": ConfigField(str, "", "Default directory of local development plugins"),
    "remote_url": ConfigField(
        str, "https://github.com/{}", "Clone URL template, {} is the plugin name", min=3
    ),
    "self_name": ConfigField(
        str, "trellis-pm/trellis", "Registry name of the plugin manager itself", min=1
    ),
}


def validate_config(config: dict[str, Any], schema: dict[str, ConfigField]) -> None:
    """
    Validate a complete configuration dictionary.

    Raises:
        ValidationError: On unknown keys, missing keys or invalid values
    """
    for key in config:
        if key not in schema:
            raise ValidationError(f"Unknown configuration field: {key}")

    for name, field in schema.items():
        if name not in config:
            raise ValidationError(f"Missing required field: {name}")
        try:
            field.validate(config[name])
        except ValidationError as e:
            raise ValidationError(f"Field '{name}': {e}") from e


def generate_default_config(schema: dict[str, ConfigField]) -> dict[str, Any]:
    """Return the default value of every field."""
    return {name: field.default for name, field in schema.items()}


def merge_with_defaults(
    config: dict[str, Any], schema: dict[str, ConfigField]
) -> dict[str, Any]:
    """Overlay user values on the schema defaults and validate the result."""
    merged = generate_default_config(schema)
    merged.update(config)
    validate_config(merged, schema)
    return merged
