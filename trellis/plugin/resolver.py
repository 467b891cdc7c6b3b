"""
Dependency resolution.

Dependencies are declared with Plugin.depends(), which registers unknown
references as lazy stubs. This module finds true cycles in the resulting
graph. Cycles are diagnostics: loading still terminates because a plugin is
marked loaded before its dependencies are visited.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trellis.plugin.plugin import Plugin

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyCycle:
    """
    A dependency cycle.

    Attributes:
        path: Plugin names along the cycle, first name repeated at the end
    """

    path: tuple[str, ...]

    def __str__(self) -> str:
        return " -> ".join(self.path)

    @classmethod
    def from_chain(cls, chain: Iterable[str], target: str) -> "DependencyCycle":
        """Build the cycle closed by ``target`` on a load chain."""
        chain = list(chain)
        start = chain.index(target) if target in chain else 0
        return cls(tuple(chain[start:]) + (target,))


def find_cycles(plugins: Iterable["Plugin"]) -> list[DependencyCycle]:
    """
    Find every dependency cycle reachable from the given plugins.

    Depth-first search with a visited set; each cycle is reported once.

    Args:
        plugins: Plugins to start from (usually the whole registry)

    Returns:
        Cycles in discovery order
    """
    cycles: list[DependencyCycle] = []
    seen: set[frozenset[str]] = set()
    visited: set[str] = set()

    def visit(plugin: "Plugin", stack: list[str]) -> None:
        if plugin.name in stack:
            cycle = DependencyCycle.from_chain(stack, plugin.name)
            key = frozenset(cycle.path)
            if key not in seen:
                seen.add(key)
                cycles.append(cycle)
            return
        if plugin.name in visited:
            return
        visited.add(plugin.name)

        stack.append(plugin.name)
        for dep in plugin.dependencies:
            visit(dep, stack)
        stack.pop()

    for plugin in plugins:
        visit(plugin, [])

    for cycle in cycles:
        logger.error("Dependency cycle detected: %s", cycle)
    return cycles
