"""
Lazy-loading triggers.

Each arm_* function marks a plugin lazy and registers host triggers that
load it on first use. Registrations live in the plugin's trigger group,
which the loader clears once the plugin is loaded.

Key features:
- Events ("Event" or "Event pattern"), with TrellisDone mapped to the
  manager's own "User TrellisDone" event
- Filetypes, re-announced to the freshly loaded plugin
- Commands, replayed with their original arguments and bang flag
- Command-line completion, answered after a forced load
- Key sequences, optionally bound to a command or function
- Predicates, evaluated once at registration
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from trellis.core.aio import delay
from trellis.core.triggers import TriggerKind
from trellis.host import CommandInvocation, KeyPress, parse_command

if TYPE_CHECKING:
    from trellis.plugin.plugin import Plugin

logger = logging.getLogger(__name__)

DONE_EVENT = "TrellisDone"
LOCAL_COMMAND_DELAY_MS = 5


async def load_and_wait(plugin: "Plugin", do_action: bool = False) -> bool:
    """Load a plugin (sharing any in-flight load) and wait for it."""
    task = plugin.load(do_action)
    if task is None:
        return plugin.loaded
    return bool(await task)


def parse_event(spec: str) -> tuple[str, str | None]:
    """Split "Event pattern" into (event, pattern)."""
    if spec == DONE_EVENT:
        return "User", DONE_EVENT
    event, _, pattern = spec.strip().partition(" ")
    return event, pattern.strip() or None


def parse_mapping(mapping: Any) -> tuple[str, str, Any, dict]:
    """Normalize ``lhs`` or ``(mode, lhs[, rhs[, opts]])`` to a 4-tuple."""
    if isinstance(mapping, str):
        return "n", mapping, None, {}
    if isinstance(mapping, (list, tuple)) and 2 <= len(mapping) <= 4:
        mode, lhs, *rest = mapping
        rhs = rest[0] if rest else None
        opts = rest[1] if len(rest) > 1 else {}
        return mode or "n", lhs, rhs, dict(opts or {})
    raise ValueError(f"Invalid key mapping: {mapping!r}")


def arm_events(plugin: "Plugin", events: list[str]) -> None:
    plugin.is_lazy = True
    host = plugin.manager.host

    def on_event(payload: Any) -> Any:
        if plugin.loaded:
            return None
        return plugin.load()

    for spec in events:
        event, pattern = parse_event(spec)
        plugin.events.append(spec)
        options = {"pattern": pattern} if pattern else {}
        host.register(
            TriggerKind.EVENT, event, on_event, once=True, group=plugin.trigger_group, **options
        )


def arm_filetypes(plugin: "Plugin", filetypes: list[str]) -> None:
    plugin.is_lazy = True
    host = plugin.manager.host

    def make_callback(filetype: str) -> Callable[[Any], Any]:
        async def reannounce(payload: Any) -> None:
            if await load_and_wait(plugin):
                host.dispatch(TriggerKind.FILETYPE, filetype, payload)

        def on_filetype(payload: Any) -> Any:
            if plugin.loaded:
                return None
            return plugin.manager.schedule(reannounce, payload)

        return on_filetype

    for filetype in filetypes:
        plugin.filetypes.append(filetype)
        host.register(
            TriggerKind.FILETYPE,
            filetype,
            make_callback(filetype),
            once=True,
            group=plugin.trigger_group,
        )


def arm_commands(plugin: "Plugin", commands: list[str]) -> None:
    plugin.is_lazy = True
    host = plugin.manager.host

    async def replay(invocation: CommandInvocation) -> None:
        await load_and_wait(plugin)
        if plugin.is_local:
            await delay(LOCAL_COMMAND_DELAY_MS)
        if not host.command_exists(invocation.name):
            logger.warning(
                "Command %s is not defined after loading %s", invocation.name, plugin.name
            )
            return
        try:
            host.run_command(invocation.cmdline)
        except Exception as e:
            logger.error("Failed to execute %s: %s", invocation.cmdline, e)

    async def complete(cmdline: str) -> list[str]:
        await load_and_wait(plugin)
        return host.complete(cmdline)

    def make_callbacks(name: str) -> tuple[Callable[[Any], Any], Callable[[Any], Any]]:
        def on_command(payload: Any) -> Any:
            if plugin.loaded:
                return None
            if isinstance(payload, CommandInvocation):
                invocation = payload
            else:
                invocation = parse_command(str(payload or name))
            return plugin.manager.schedule(replay, invocation)

        def on_completion(cmdline: Any) -> Any:
            if plugin.loaded:
                return None
            return plugin.manager.schedule(complete, str(cmdline or name))

        return on_command, on_completion

    for name in commands:
        on_command, on_completion = make_callbacks(name)
        plugin.commands.append(name)
        # One-shot: the interception removes itself before the replay.
        host.register(
            TriggerKind.COMMAND, name, on_command, once=True, group=plugin.trigger_group
        )
        host.register(
            TriggerKind.COMPLETION, name, on_completion, once=True, group=plugin.trigger_group
        )
        plugin.user_commands.append(name)


def arm_keys(plugin: "Plugin", mappings: list[Any]) -> None:
    plugin.is_lazy = True
    host = plugin.manager.host

    def make_callback(mode: str, lhs: str, rhs: Any) -> Callable[[Any], Any]:
        async def run(pressed_mode: str) -> None:
            if not await load_and_wait(plugin):
                return
            if callable(rhs):
                rhs()
            elif isinstance(rhs, str):
                host.run_command(rhs)
            else:
                host.feed_keys(lhs, pressed_mode)

        def on_key(payload: Any) -> Any:
            pressed_mode = payload.mode if isinstance(payload, KeyPress) else mode
            if plugin.loaded or pressed_mode != mode:
                return None
            return plugin.manager.schedule(run, pressed_mode)

        return on_key

    for mapping in mappings:
        mode, lhs, rhs, opts = parse_mapping(mapping)
        plugin.mappings.append((mode, lhs, rhs, opts))
        host.register(
            TriggerKind.KEY,
            lhs,
            make_callback(mode, lhs, rhs),
            once=False,
            group=plugin.trigger_group,
            mode=mode,
            **opts,
        )


def evaluate_condition(plugin: "Plugin", condition: str | Callable[[], Any]) -> bool:
    """
    Evaluate a load predicate; load right away (with the build action) if true.

    Returns:
        The predicate's value (False if it could not be evaluated)
    """
    plugin.is_lazy = True
    try:
        if callable(condition):
            result = bool(condition())
        else:
            result = plugin.manager.host.evaluate(condition)
    except Exception as e:
        logger.error("Failed to evaluate condition for %s: %s", plugin.name, e)
        return False

    if result and not plugin.loaded:
        plugin.load(do_action=True)
    return bool(result)
