"""
Plugin entity.

A Plugin is one registry entry backed by one repository checkout (or one
local directory). Its configuration methods return the plugin itself so
they can be chained:

    manager.use("owner/editor-tools").depends("owner/shared-lib").cmd("Tools")
"""

import asyncio
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from trellis.core import fs
from trellis.core.aio import Promise
from trellis.plugin import lazy, loader, sync
from trellis.plugin.hooks import ConfigurationError, HookType, as_hook, run_hook
from trellis.plugin.state import Status

if TYPE_CHECKING:
    from trellis.plugin.manager import PluginManager

logger = logging.getLogger(__name__)

MODULE_PREFIXES = ("nvim-", "vim-")
MODULE_SUFFIXES = (".nvim", "-nvim", ".vim", "-vim")


def normalize_name(name: str) -> str:
    """Normalize a locator: expand ~, use forward slashes, drop trailing slashes."""
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(f"Plugin name must be a non-empty string, got {name!r}")
    name = os.path.expanduser(name.strip()).replace("\\", "/")
    while "//" in name:
        name = name.replace("//", "/")
    return name.rstrip("/") or "/"


def leaf_name(name: str) -> str:
    """Last path component of a locator, without a .git suffix."""
    parts = [p for p in name.split("/") if p]
    leaf = parts[-1] if parts else name
    return leaf[:-4] if leaf.endswith(".git") else leaf


def module_candidates(plugin_name: str) -> list[str]:
    """Module names to try when calling setup(), most specific first."""
    module = plugin_name
    for suffix in MODULE_SUFFIXES:
        if module.endswith(suffix):
            module = module[: -len(suffix)]
            break
    for prefix in MODULE_PREFIXES:
        if module.startswith(prefix):
            module = module[len(prefix):]
            break
    return [module] if module == plugin_name else [module, plugin_name]


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class Plugin:
    """
    A registered plugin.

    Attributes:
        id: Registration ordinal (1-based)
        name: Normalized locator ("owner/repo" or a local path)
        plugin_name: Directory name of the checkout
        is_remote: Whether the plugin is cloned from a remote
        is_local: Whether the plugin lives in a local development directory
        is_lazy: Whether the plugin is installed under the opt root
        status: Current Status
        loaded: Set once, when the plugin's code has been made reachable
        dependencies: Plugins loaded together with this one
    """

    def __init__(self, name: str, manager: "PluginManager"):
        self.manager = manager
        self.id = 0
        self.name = normalize_name(name)
        self.plugin_name = leaf_name(self.name)

        home = str(Path.home())
        path_like = self.name.startswith("/") or self.name.startswith(home)
        self.is_local = path_like
        self.is_remote = not path_like
        self.is_lazy = False
        self.local_path: Path | None = None
        self.remote_branch: str | None = None

        self.status = Status.PENDING
        self.loaded = False

        self.events: list[str] = []
        self.filetypes: list[str] = []
        self.commands: list[str] = []
        self.mappings: list[Any] = []
        self.user_commands: list[str] = []

        self.setup_opts: Any = {}
        self.init_hook = None
        self.config_hook = None
        self.after_hook = None
        self.colorscheme: str | None = None
        self.run_action = None
        self.need_build = False
        self.built = False

        self.dependencies: list[Plugin] = []
        self._load_task: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"Plugin({self.name!r}, status={self.status.value}, loaded={self.loaded})"

    @property
    def trigger_group(self) -> str:
        return f"trellis_{self.plugin_name}"

    def get_path(self) -> Path:
        """Directory of the checkout."""
        if not self.is_local and self.local_path is None:
            settings = self.manager.settings
            root = settings.opt_dir if self.is_lazy else settings.start_dir
            return root / self.plugin_name
        if self.local_path is not None:
            return self.local_path / self.plugin_name
        return Path(self.name)

    def is_installed(self) -> Promise:
        """Promise of whether the checkout directory exists."""
        return Promise.from_coroutine(fs.is_dir, self.get_path())

    # Lazy-loading triggers
    def on(self, events: str | list[str]) -> "Plugin":
        """Load on named events ("Event" or "Event pattern")."""
        lazy.arm_events(self, _as_list(events))
        return self

    def ft(self, filetypes: str | list[str]) -> "Plugin":
        """Load when a buffer of one of the filetypes becomes active."""
        lazy.arm_filetypes(self, _as_list(filetypes))
        return self

    def cmd(self, commands: str | list[str]) -> "Plugin":
        """Load when one of the commands is invoked or completed."""
        lazy.arm_commands(self, _as_list(commands))
        return self

    def keys(self, mappings: Any) -> "Plugin":
        """Load when one of the key sequences is pressed."""
        if isinstance(mappings, (str, tuple)):
            mappings = [mappings]
        lazy.arm_keys(self, _as_list(mappings))
        return self

    def cond(self, condition: str | Callable[[], Any]) -> "Plugin":
        """Load right away (running the build action) if the condition holds."""
        lazy.evaluate_condition(self, condition)
        return self

    # Configuration
    def load_path(self, path: str | Path | None = None) -> "Plugin":
        """Mark as a local development plugin living under ``path``."""
        path = path or self.manager.settings.dev_path
        if not path:
            raise ConfigurationError(f"No development path given for {self.name}")
        self.is_local = True
        self.is_remote = False
        self.local_path = Path(normalize_name(str(path)))
        return self

    def setup(self, opts: Any) -> "Plugin":
        """Options passed to the plugin module's setup()."""
        self.setup_opts = opts
        return self

    def init(self, hook: str | Callable[[], Any]) -> "Plugin":
        """Hook run before the plugin is loaded."""
        self.init_hook = as_hook(hook, HookType.INIT)
        return self

    def config(self, hook: str | Callable[[], Any]) -> "Plugin":
        """Hook run after the plugin and its dependencies are loaded."""
        self.config_hook = as_hook(hook, HookType.CONFIG)
        return self

    def after(self, fn: Callable[[], Any]) -> "Plugin":
        """Function run once the dependencies have loaded."""
        self.after_hook = as_hook(fn, HookType.AFTER, commands=False)
        return self

    def branch(self, branch_name: str) -> "Plugin":
        """Track a specific remote branch."""
        if not isinstance(branch_name, str) or not branch_name:
            raise ConfigurationError("Branch name must be a non-empty string")
        self.remote_branch = branch_name
        return self

    def theme(self, name: str | None = None) -> "Plugin":
        """Apply a colorscheme from this plugin, now if installed, else after install."""
        self.colorscheme = name or self.plugin_name
        self.manager.schedule(self.apply_theme)
        return self

    def run(self, action: str | Callable[[], Any]) -> "Plugin":
        """One-shot build action run after install."""
        self.run_action = as_hook(action, HookType.BUILD)
        return self

    def depends(self, deps: str | list[str]) -> "Plugin":
        """
        Declare dependencies.

        Unknown dependencies are registered as lazy stubs.
        """
        for dep_name in _as_list(deps):
            dep = self.manager.registry.get(normalize_name(dep_name))
            if dep is None:
                dep = self.manager.use(dep_name)
                dep.is_lazy = True
            if dep is not self and dep not in self.dependencies:
                self.dependencies.append(dep)
        return self

    # Loading
    def load(
        self,
        do_action: bool = False,
        callback: Callable[[], Any] | None = None,
        chain: tuple[str, ...] = (),
    ) -> asyncio.Task | None:
        """
        Load the plugin and its dependencies.

        Concurrent calls share the in-flight load; a loaded plugin is not
        loaded again. Outside a running event loop the load is deferred to
        the manager's startup().

        Returns:
            Task resolving to True once loaded, or None when deferred
        """
        task = self._load_task
        if task is not None and (not task.done() or self.loaded):
            return task
        if not self.manager.loop_running():
            self.manager.schedule(lambda: self.load(do_action, callback))
            return None
        self._load_task = loader.start_load(self, do_action, callback, chain)
        return self._load_task

    def call_setup(self) -> bool:
        """Call setup(setup_opts) on the plugin's module, if the host finds one."""
        return self.manager.host.setup_module(module_candidates(self.plugin_name), self.setup_opts)

    def run_build(self) -> bool:
        """Run the build action at most once. Returns True if it ran."""
        if self.run_action is None or self.built:
            return False
        self.built = True
        self.need_build = False
        run_hook(self.run_action, HookType.BUILD, self.name, self.manager.host)
        return True

    async def apply_theme(self) -> None:
        if not self.colorscheme:
            return
        installed = await self.is_installed()
        if installed.ok and installed.value:
            host = self.manager.host
            host.add_search_path(str(self.get_path()))
            host.apply_theme(self.colorscheme)

    # Version control
    def install(self) -> Promise:
        return Promise.from_coroutine(sync.install, self)

    def install_with_retry(self) -> Promise:
        return Promise.from_coroutine(sync.install_with_retry, self)

    def has_updates(self) -> Promise:
        return Promise.from_coroutine(sync.has_updates, self)

    def update(self, skip_check: bool = False) -> Promise:
        return Promise.from_coroutine(sync.update, self, skip_check)


SPEC_KEYS = {
    "name", "depends", "setup", "init", "config", "after", "build", "run", "theme",
    "branch", "lazy", "on", "events", "ft", "cmd", "keys", "cond", "dev", "path",
}


def apply_spec(plugin: Plugin, spec: dict[str, Any]) -> Plugin:
    """
    Apply a structured specification to a plugin.

    Raises:
        ConfigurationError: On unknown keys or malformed values
    """
    unknown = sorted(set(spec) - SPEC_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown keys in spec of {plugin.name}: {', '.join(unknown)}")

    if spec.get("branch") is not None:
        plugin.branch(spec["branch"])
    if spec.get("lazy"):
        plugin.is_lazy = True
    dev = spec.get("path", spec.get("dev"))
    if dev:
        plugin.load_path(None if dev is True else dev)
    if "setup" in spec:
        plugin.setup(spec["setup"])
    if spec.get("init") is not None:
        plugin.init(spec["init"])
    if spec.get("config") is not None:
        plugin.config(spec["config"])
    if spec.get("after") is not None:
        plugin.after(spec["after"])
    action = spec.get("build", spec.get("run"))
    if action is not None:
        plugin.run(action)
    if spec.get("depends"):
        plugin.depends(spec["depends"])
    if spec.get("theme"):
        plugin.theme(None if spec["theme"] is True else spec["theme"])

    events = spec.get("on", spec.get("events"))
    if events:
        plugin.on(events)
    if spec.get("ft"):
        plugin.ft(spec["ft"])
    if spec.get("cmd"):
        plugin.cmd(spec["cmd"])
    if spec.get("keys"):
        plugin.keys(spec["keys"])
    if spec.get("cond") is not None:
        plugin.cond(spec["cond"])
    return plugin
