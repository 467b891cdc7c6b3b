"""
Plugin Lifecycle Hooks.

A hook is either a command line executed by the host or a Python callable.

Key features:
- Tagged variant: CommandHook(text) | ActionHook(callable)
- Validation of user-supplied hook values
- Hook types: init (before load), after (after dependencies), config
  (after setup) and build (one-shot post-install action)
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from trellis.host import Host


class ConfigurationError(Exception):
    """Raised when a plugin specification or hook is malformed."""

    pass


class HookError(Exception):
    """Raised when a hook fails while running."""

    def __init__(self, hook_type: "HookType", plugin_name: str, cause: Exception):
        super().__init__(f"{hook_type.value} hook of {plugin_name} failed: {cause}")
        self.hook_type = hook_type
        self.plugin_name = plugin_name
        self.cause = cause


class HookType(Enum):
    """Hook type enumeration."""

    INIT = "init"
    AFTER = "after"
    CONFIG = "config"
    BUILD = "build"


@dataclass(frozen=True)
class CommandHook:
    """A command line run through the host."""

    text: str

    def run(self, host: "Host") -> Any:
        return host.run_command(self.text)


@dataclass(frozen=True)
class ActionHook:
    """A Python callable run without arguments."""

    action: Callable[[], Any]

    def run(self, host: "Host") -> Any:
        return self.action()


Hook = Union[CommandHook, ActionHook]


def as_hook(value: Any, hook_type: HookType, commands: bool = True) -> Hook | None:
    """
    Convert a user-supplied value into a Hook.

    Args:
        value: None, a command string, a callable or an existing Hook
        hook_type: Hook being configured (used in error messages)
        commands: Whether command strings are accepted

    Raises:
        ConfigurationError: If the value cannot be used as this hook
    """
    if value is None or isinstance(value, (CommandHook, ActionHook)):
        return value
    if isinstance(value, str):
        if not commands:
            raise ConfigurationError(f"{hook_type.value} must be a function")
        if not value.strip():
            raise ConfigurationError(f"{hook_type.value} command must not be empty")
        return CommandHook(value)
    if callable(value):
        return ActionHook(value)
    raise ConfigurationError(
        f"{hook_type.value} must be a command string or a function, got {type(value).__name__}"
    )


def run_hook(hook: Hook, hook_type: HookType, plugin_name: str, host: "Host") -> Any:
    """
    Run a hook.

    Raises:
        HookError: If the hook raises
    """
    try:
        return hook.run(host)
    except Exception as e:
        raise HookError(hook_type, plugin_name, e) from e
