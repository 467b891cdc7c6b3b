"""
Plugin Manager.

This module provides the explicit context object every operation runs in.

Key features:
- Plugin registration from locators or structured specs
- Install, update and clean pipelines
- Startup sequence: deferred work, eager loads, optional auto install and
  the "User TrellisDone" event
- Collected diagnostics (dependency cycles, reentrant loads)
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from trellis.config.settings import Settings
from trellis.core.aio import spawn
from trellis.core.triggers import TriggerKind
from trellis.host import HeadlessHost, Host
from trellis.plugin import pipelines
from trellis.plugin.git_ops import GitExecutor
from trellis.plugin.hooks import ConfigurationError
from trellis.plugin.lazy import DONE_EVENT
from trellis.plugin.loader import ReentrancyHazard
from trellis.plugin.pipelines import PipelineReport
from trellis.plugin.plugin import Plugin, apply_spec
from trellis.plugin.registry import Registry
from trellis.plugin.resolver import DependencyCycle
from trellis.progress import ProgressReporter

logger = logging.getLogger(__name__)


class PluginManager:
    """
    Plugin manager context.

    Holds the settings, registry, host, git executor and progress reporter.
    Several managers can coexist; nothing is process-wide.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        host: Host | None = None,
        git: GitExecutor | None = None,
        reporter: ProgressReporter | None = None,
    ):
        """
        Initialize PluginManager.

        Args:
            settings: Manager settings (defaults if omitted)
            host: Host capabilities (a HeadlessHost if omitted)
            git: git executor (bounded by settings.git_timeout if omitted)
            reporter: Progress sink (a silent ProgressReporter if omitted)
        """
        self.settings = settings or Settings()
        self.host = host or HeadlessHost()
        self.git = git or GitExecutor(timeout=self.settings.git_timeout_seconds)
        self.reporter = reporter or ProgressReporter()
        self.registry = Registry()
        self.cycles: list[DependencyCycle] = []
        self.hazards: list[ReentrancyHazard] = []
        self._deferred: list[tuple[Callable[..., Any], tuple]] = []

        self.self_entry = Plugin(self.settings.self_name, self)
        self.self_entry.is_lazy = True

    def __repr__(self) -> str:
        return f"PluginManager(plugins={self.count}, loaded={self.loaded_count})"

    @property
    def count(self) -> int:
        return self.registry.count

    @property
    def loaded_count(self) -> int:
        return self.registry.loaded_count

    @property
    def plugins(self) -> list[Plugin]:
        return list(self.registry)

    def use(self, spec: str | dict[str, Any]) -> Plugin:
        """
        Register a plugin.

        Args:
            spec: Locator ("owner/repo" or a local path) or a structured spec

        Returns:
            The plugin (the existing one if already registered)

        Raises:
            ConfigurationError: If the plugin spec is malformed
        """
        if isinstance(spec, dict):
            if "name" not in spec:
                raise ConfigurationError(f"Plugin spec needs a 'name': {spec!r}")
            plugin = self.use(spec["name"])
            return apply_spec(plugin, spec)
        if not isinstance(spec, str):
            raise ConfigurationError(
                f"Plugin spec must be a string or a table, got {type(spec).__name__}"
            )
        return self.registry.add(Plugin(spec, self))

    def get_plugin(self, name: str) -> Plugin | None:
        plugin = self.registry.get(name)
        if plugin is not None:
            return plugin
        for candidate in self.registry:
            if candidate.plugin_name == name:
                return candidate
        return None

    # Deferred work
    @staticmethod
    def loop_running() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def schedule(self, func: Callable[..., Any], *args: Any) -> Any:
        """
        Run func(*args) now if an event loop is running, else at startup().

        Coroutine functions are started as tasks.

        Returns:
            The task or return value, or None when deferred
        """
        if not self.loop_running():
            self._deferred.append((func, args))
            return None
        if inspect.iscoroutinefunction(func):
            return spawn(func, *args)
        return func(*args)

    async def run_deferred(self) -> None:
        """Run work scheduled before the event loop was running."""
        while self._deferred:
            func, args = self._deferred.pop(0)
            try:
                outcome = func(*args)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error("Deferred call %r failed: %s", func, e)

    # Diagnostics
    def record_cycle(self, cycle: DependencyCycle) -> None:
        if any(set(cycle.path) == set(known.path) for known in self.cycles):
            return
        logger.error("Dependency cycle detected: %s", cycle)
        self.cycles.append(cycle)

    def record_cycles(self, cycles: list[DependencyCycle]) -> None:
        for cycle in cycles:
            self.record_cycle(cycle)

    def record_hazard(self, hazard: ReentrancyHazard) -> None:
        logger.warning("Reentrant load: %s", hazard)
        self.hazards.append(hazard)

    # Operations
    async def install(self) -> PipelineReport:
        return await pipelines.install(self)

    async def update(self) -> PipelineReport:
        return await pipelines.update(self)

    async def clean(self) -> PipelineReport:
        return await pipelines.clean(self)

    async def load_all(self) -> list[Plugin]:
        """
        Load every non-lazy installed plugin.

        Returns:
            Plugins loaded by this call
        """
        tasks = []
        for plugin in self.registry:
            if plugin.is_lazy or plugin.loaded:
                continue
            installed = await plugin.is_installed()
            if installed.ok and installed.value:
                tasks.append((plugin, plugin.load()))

        loaded = []
        for plugin, task in tasks:
            if task is not None and await task:
                loaded.append(plugin)
        return loaded

    async def startup(self) -> PipelineReport | None:
        """
        Start the manager.

        Runs deferred work, loads eager plugins, installs missing plugins
        when auto_install is set and finally dispatches "User TrellisDone".

        Returns:
            The install report when an install ran
        """
        await self.run_deferred()
        await self.load_all()

        report = None
        if self.settings.auto_install:
            report = await self.install()
            await self.load_all()

        self.host.dispatch(TriggerKind.EVENT, "User", subject=DONE_EVENT)
        return report
