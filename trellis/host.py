"""
Host capability interface.

The plugin manager never touches an embedding application directly. Every
interaction (trigger registration, search path changes, command execution,
key replay, confirmation prompts) goes through a Host.

HeadlessHost is a complete in-process implementation backed by a
TriggerBus. It is used by the command-line tool and by the test-suite.
"""

import inspect
import logging
import runpy
import shlex
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from trellis.core.triggers import TriggerBus, TriggerKind

logger = logging.getLogger(__name__)


class HostError(Exception):
    """Base exception for host errors."""

    pass


@dataclass
class CommandInvocation:
    """
    Payload of a command trigger.

    Attributes:
        name: Command name
        bang: Whether the command was invoked with "!"
        args: Raw argument string
    """

    name: str
    bang: bool = False
    args: str = ""

    @property
    def cmdline(self) -> str:
        text = self.name + ("!" if self.bang else "")
        return f"{text} {self.args}" if self.args else text


@dataclass
class KeyPress:
    """Payload of a key trigger."""

    lhs: str
    mode: str = "n"


def parse_command(text: str) -> CommandInvocation:
    """Split "Name[!] args" into a CommandInvocation."""
    text = text.strip()
    if not text:
        raise HostError("Empty command")
    head, _, args = text.partition(" ")
    bang = head.endswith("!")
    return CommandInvocation(name=head.rstrip("!"), bang=bang, args=args.strip())


class Host(ABC):
    """Capabilities the plugin manager needs from its embedding application."""

    @abstractmethod
    def register(
        self,
        kind: TriggerKind,
        matcher: str,
        callback: Callable[[Any], Any],
        once: bool = True,
        group: str | None = None,
        **options: Any,
    ) -> int:
        """Register a trigger callback and return its handle."""

    @abstractmethod
    def unregister(self, handle: int) -> bool:
        """Remove a trigger registration."""

    @abstractmethod
    def clear_group(self, group: str) -> int:
        """Remove every trigger registration of a group."""

    @abstractmethod
    def dispatch(
        self, kind: TriggerKind, name: str, payload: Any = None, subject: str | None = None
    ) -> list[Any]:
        """Fire a trigger as if the host had observed it."""

    @abstractmethod
    def add_search_path(self, path: str) -> None:
        """Append a directory to the runtime search path."""

    @abstractmethod
    def activate(self, name: str) -> None:
        """Activate an optional package installed under the opt root."""

    @abstractmethod
    def source(self, path: str) -> None:
        """Execute a plugin script."""

    @abstractmethod
    def run_command(self, text: str) -> Any:
        """Execute a command line."""

    @abstractmethod
    def command_exists(self, name: str) -> bool:
        """Return True if a (non-intercepted) command is defined."""

    @abstractmethod
    def complete(self, cmdline: str) -> list[str]:
        """Return completion candidates for a command line."""

    @abstractmethod
    def feed_keys(self, keys: str, mode: str = "n") -> None:
        """Replay a key sequence."""

    @abstractmethod
    def evaluate(self, expression: str) -> bool:
        """Evaluate a host expression as a boolean."""

    @abstractmethod
    def apply_theme(self, name: str) -> None:
        """Apply a colorscheme."""

    @abstractmethod
    def setup_module(self, candidates: list[str], options: Any) -> bool:
        """Call setup(options) on the first candidate module that has one."""

    @abstractmethod
    async def confirm(self, prompt: str) -> bool:
        """Ask the user a yes/no question."""


class HeadlessHost(Host):
    """
    In-process host.

    Records every side effect so callers can inspect what happened, and
    keeps user-defined commands, key maps and modules in plain dictionaries.
    Python scripts passed to source() are executed with ``host`` bound to
    this instance, so local plugins can define commands and modules.
    """

    def __init__(
        self,
        confirm: Callable[[str], Any] | None = None,
        evaluator: Callable[[str], Any] | None = None,
    ):
        self.bus = TriggerBus()
        self.search_path: list[str] = []
        self.activated: list[str] = []
        self.sourced: list[str] = []
        self.executed: list[str] = []
        self.fed_keys: list[str] = []
        self.themes: list[str] = []
        self.setup_calls: list[tuple[str, Any]] = []
        self.variables: dict[str, Any] = {}
        self.commands: dict[str, Callable[[CommandInvocation], Any]] = {}
        self.completions: dict[str, list[str]] = {}
        self.keymaps: dict[tuple[str, str], Callable[[], Any]] = {}
        self.modules: dict[str, Any] = {}
        self._confirm = confirm
        self._evaluator = evaluator

    # Trigger registration
    def register(self, kind, matcher, callback, once=True, group=None, **options):
        return self.bus.register(kind, matcher, callback, once=once, group=group, **options)

    def unregister(self, handle):
        return self.bus.unregister(handle)

    def clear_group(self, group):
        return self.bus.clear_group(group)

    def dispatch(self, kind, name, payload=None, subject=None):
        return self.bus.dispatch(kind, name, payload, subject=subject)

    # Definitions made by loaded plugins
    def define_command(
        self,
        name: str,
        handler: Callable[[CommandInvocation], Any],
        completions: list[str] | None = None,
    ) -> None:
        self.commands[name] = handler
        if completions is not None:
            self.completions[name] = list(completions)

    def define_keymap(self, lhs: str, handler: Callable[[], Any], mode: str = "n") -> None:
        self.keymaps[(mode, lhs)] = handler

    def provide_module(self, name: str, module: Any) -> None:
        self.modules[name] = module

    # User-facing entry points
    def invoke(self, name: str, bang: bool = False, args: str = "") -> Any:
        """Invoke a command the way a user would, honouring interceptions."""
        invocation = CommandInvocation(name=name, bang=bang, args=args)
        if self.bus.is_registered(TriggerKind.COMMAND, name):
            return self.bus.dispatch(TriggerKind.COMMAND, name, invocation)
        handler = self.commands.get(name)
        if handler is None:
            raise HostError(f"Not a command: {name}")
        return handler(invocation)

    def press(self, lhs: str, mode: str = "n") -> Any:
        """Press a key sequence, honouring interceptions."""
        if self.bus.is_registered(TriggerKind.KEY, lhs):
            return self.bus.dispatch(TriggerKind.KEY, lhs, KeyPress(lhs=lhs, mode=mode))
        handler = self.keymaps.get((mode, lhs))
        return handler() if handler is not None else None

    async def request_completion(self, cmdline: str) -> list[str]:
        """Complete a command line, forcing lazy plugins to load first."""
        name = parse_command(cmdline).name
        for outcome in self.bus.dispatch(TriggerKind.COMPLETION, name, cmdline):
            if inspect.isawaitable(outcome):
                outcome = await outcome
            if outcome is not None:
                return list(outcome)
        return self.complete(cmdline)

    def open_file(self, filetype: str, buffer: int = 0, data: Any = None) -> list[Any]:
        """Announce that a buffer of the given filetype became active."""
        payload = {"buffer": buffer, "filetype": filetype, "data": data}
        return self.bus.dispatch(TriggerKind.FILETYPE, filetype, payload)

    def emit(self, event: str, subject: str | None = None, data: Any = None) -> list[Any]:
        """Announce a named event."""
        return self.bus.dispatch(TriggerKind.EVENT, event, data, subject=subject)

    # Host capabilities
    def add_search_path(self, path):
        if path not in self.search_path:
            self.search_path.append(path)

    def activate(self, name):
        self.activated.append(name)

    def source(self, path):
        self.sourced.append(path)
        if Path(path).suffix == ".py":
            runpy.run_path(path, init_globals={"host": self})

    def run_command(self, text):
        self.executed.append(text)
        invocation = parse_command(text)
        return self.invoke(invocation.name, invocation.bang, invocation.args)

    def command_exists(self, name):
        return name in self.commands

    def complete(self, cmdline):
        name = parse_command(cmdline).name
        candidates = self.completions.get(name, [])
        parts = shlex.split(cmdline)
        prefix = parts[-1] if len(parts) > 1 and not cmdline.endswith(" ") else ""
        return sorted(c for c in candidates if c.startswith(prefix))

    def feed_keys(self, keys, mode="n"):
        self.fed_keys.append(keys)
        self.press(keys, mode)

    def evaluate(self, expression):
        if self._evaluator is not None:
            return bool(self._evaluator(expression))
        return bool(self.variables.get(expression))

    def apply_theme(self, name):
        self.themes.append(name)

    def setup_module(self, candidates, options):
        for name in candidates:
            module = self.modules.get(name)
            setup = getattr(module, "setup", None)
            if callable(setup):
                setup(options)
                self.setup_calls.append((name, options))
                return True
        return False

    async def confirm(self, prompt):
        if self._confirm is None:
            logger.info("No confirmation handler, declining: %s", prompt)
            return False
        answer = self._confirm(prompt)
        if inspect.isawaitable(answer):
            answer = await answer
        if isinstance(answer, str):
            return answer.strip().lower().startswith("y")
        return bool(answer)
