"""
Plugin Registry.

Insertion-ordered mapping of normalized plugin names to Plugin objects.

Key features:
- Unique names (a duplicate registration returns the existing plugin)
- Registration ordinals assigned in insertion order
- Registered and loaded counters
"""

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trellis.plugin.plugin import Plugin

logger = logging.getLogger(__name__)


class Registry:
    """Ordered registry of plugins."""

    def __init__(self):
        self._plugins: dict[str, "Plugin"] = {}
        self.loaded_count = 0

    def __len__(self) -> int:
        return len(self._plugins)

    def __iter__(self) -> Iterator["Plugin"]:
        return iter(list(self._plugins.values()))

    def __contains__(self, name: str) -> bool:
        return name in self._plugins

    @property
    def count(self) -> int:
        return len(self._plugins)

    def get(self, name: str) -> "Plugin | None":
        return self._plugins.get(name)

    def add(self, plugin: "Plugin") -> "Plugin":
        """
        Register a plugin.

        Returns:
            The registered plugin, or the existing one if the name is taken
        """
        existing = self._plugins.get(plugin.name)
        if existing is not None:
            logger.warning("Plugin %s is already registered", plugin.name)
            return existing

        plugin.id = len(self._plugins) + 1
        self._plugins[plugin.name] = plugin
        logger.debug("Registered plugin %s (#%d)", plugin.name, plugin.id)
        return plugin

    def names(self) -> list[str]:
        return list(self._plugins)

    def leaf_names(self) -> set[str]:
        """Directory names of every registered plugin."""
        return {plugin.plugin_name for plugin in self._plugins.values()}
