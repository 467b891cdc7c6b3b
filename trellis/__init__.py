"""
Trellis - Asynchronous plugin manager.

This is the main package that exports the public API for Trellis.

Example usage:
    import asyncio
    from trellis import PluginManager

    manager = PluginManager()
    manager.use("owner/editor-tools").cmd("Tools")
    asyncio.run(manager.install())
"""

__version__ = "0.1.0"

from trellis.config import Settings, load_config
from trellis.core.aio import Promise, Result
from trellis.host import HeadlessHost, Host
from trellis.plugin.manager import PluginManager
from trellis.plugin.pipelines import PipelineReport
from trellis.plugin.plugin import Plugin
from trellis.plugin.state import Status, UpdateOutcome

__all__ = [
    "__version__",
    "HeadlessHost",
    "Host",
    "PipelineReport",
    "Plugin",
    "PluginManager",
    "Promise",
    "Result",
    "Settings",
    "Status",
    "UpdateOutcome",
    "load_config",
]
