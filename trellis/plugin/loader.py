"""
Plugin Loader.

This module implements the load state machine:
PENDING -> LOADING -> LOADED | ERROR

Key features:
- Directory probe before anything runs
- Local plugins join the search path and have their scripts sourced;
  lazy remote plugins are activated through the host
- A plugin is marked loaded before its dependencies are visited, so
  dependency cycles terminate
- Dependencies load concurrently, carrying the chain of names that led to
  them; cycles and reentrant loads are recorded as diagnostics
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from trellis.core import fs
from trellis.core.aio import Promise, join_all, spawn
from trellis.plugin.hooks import HookError, HookType, run_hook
from trellis.plugin.resolver import DependencyCycle
from trellis.plugin.state import Status

if TYPE_CHECKING:
    from trellis.plugin.plugin import Plugin

logger = logging.getLogger(__name__)

SCRIPT_DIR = "plugin"
AFTER_DIR = "after"
SCRIPT_SUFFIXES = (".lua", ".vim", ".py")


@dataclass(frozen=True)
class ReentrancyHazard:
    """
    A dependency that was already marked loaded while its own load was
    still running, so its dependent continued before the dependency's
    hooks had finished.

    Attributes:
        plugin: Name of the dependency
        dependent: Name of the plugin that asked for it
        chain: Load chain leading to the dependent
    """

    plugin: str
    dependent: str
    chain: tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"{self.dependent} continued while {self.plugin} was still loading"


async def plugin_scripts(path: Path) -> list[Path]:
    """Scripts under ``<path>/plugin`` in name order."""
    script_dir = path / SCRIPT_DIR
    if not await fs.is_dir(script_dir):
        return []
    return [
        script_dir / name
        for name, kind in await fs.scan_dir(script_dir)
        if kind in ("file", "link") and name.endswith(SCRIPT_SUFFIXES)
    ]


def start_load(
    plugin: "Plugin",
    do_action: bool = False,
    callback: Callable[[], Any] | None = None,
    chain: tuple[str, ...] = (),
) -> asyncio.Task:
    """Start load_plugin() as a task on the running loop."""
    return spawn(load_plugin, plugin, do_action, callback, chain)


async def _wait(task: asyncio.Task) -> Any:
    return await task


def _dependency_load(dep: "Plugin", chain: tuple[str, ...]) -> Promise:
    task = dep.load(chain=chain)
    if task is None:
        return Promise.resolved(dep.loaded)
    return Promise.from_coroutine(_wait, task)


async def _make_reachable(plugin: "Plugin", path: Path) -> None:
    host = plugin.manager.host
    if plugin.is_local:
        host.add_search_path(str(path))
        if await fs.is_dir(path / AFTER_DIR):
            host.add_search_path(str(path / AFTER_DIR))
        for script in await plugin_scripts(path):
            host.source(str(script))
    elif plugin.is_lazy:
        host.activate(plugin.plugin_name)


def _run_post_load(plugin: "Plugin") -> bool:
    """Run the after hook, setup() and the config hook. Returns False on failure."""
    host = plugin.manager.host
    ok = True

    steps: list[tuple[str, Callable[[], Any]]] = []
    if plugin.after_hook is not None:
        steps.append(("after", lambda: run_hook(plugin.after_hook, HookType.AFTER, plugin.name, host)))
    steps.append(("setup", plugin.call_setup))
    if plugin.config_hook is not None:
        steps.append(
            ("config", lambda: run_hook(plugin.config_hook, HookType.CONFIG, plugin.name, host))
        )

    for step, action in steps:
        try:
            action()
        except Exception as e:
            logger.error("Failed to run %s for %s: %s", step, plugin.name, e)
            ok = False
    return ok


async def load_plugin(
    plugin: "Plugin",
    do_action: bool = False,
    callback: Callable[[], Any] | None = None,
    chain: tuple[str, ...] = (),
) -> bool:
    """
    Load a plugin and its dependencies.

    Args:
        plugin: Plugin to load
        do_action: Run the build action once loaded
        callback: Called once the load has finished
        chain: Names of the plugins whose loads led here

    Returns:
        True if the plugin is loaded, False if the load was aborted
    """
    if plugin.loaded:
        return True

    manager = plugin.manager
    host = manager.host
    path = plugin.get_path()

    try:
        exists = await fs.is_dir(path)
    except fs.FilesystemError as e:
        logger.error("Failed to check %s: %s", path, e)
        exists = False
    if not exists:
        logger.error("Plugin directory not found for %s: %s", plugin.name, path)
        plugin.status = Status.ERROR
        return False

    plugin.status = Status.LOADING

    if plugin.init_hook is not None:
        try:
            run_hook(plugin.init_hook, HookType.INIT, plugin.name, host)
        except HookError as e:
            logger.error("%s", e)
            plugin.status = Status.ERROR
            return False

    try:
        await _make_reachable(plugin, path)
    except Exception as e:
        logger.error("Failed to load scripts for %s: %s", plugin.name, e)
        plugin.status = Status.ERROR
        return False

    # Mark loaded before visiting dependencies so cycles terminate.
    plugin.loaded = True
    manager.registry.loaded_count += 1
    host.clear_group(plugin.trigger_group)
    logger.debug("Loaded %s", plugin.name)

    chain = (*chain, plugin.name)
    pending = []
    for dep in plugin.dependencies:
        if dep.name in chain:
            manager.record_cycle(DependencyCycle.from_chain(chain, dep.name))
            continue
        if dep.loaded:
            if dep.status is Status.LOADING:
                manager.record_hazard(ReentrancyHazard(dep.name, plugin.name, chain))
            continue
        pending.append(_dependency_load(dep, chain))

    if pending:
        result = await join_all(pending)
        if not result.ok:
            logger.error("Failed to load dependencies of %s: %s", plugin.name, result.error)

    hooks_ok = _run_post_load(plugin)
    plugin.status = Status.LOADED if hooks_ok else Status.ERROR

    if do_action:
        try:
            plugin.run_build()
        except HookError as e:
            logger.error("%s", e)
            plugin.status = Status.ERROR

    if callback is not None:
        try:
            callback()
        except Exception as e:
            logger.error("Load callback for %s failed: %s", plugin.name, e)

    return True
