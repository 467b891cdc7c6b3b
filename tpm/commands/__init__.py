"""
Shared setup of tpm commands.

Every command loads the configuration file, configures logging and builds
a PluginManager with a console reporter and a headless host.
"""

import asyncio
from collections.abc import Callable
from typing import Any

from trellis.config import load_config
from trellis.host import HeadlessHost
from trellis.plugin.manager import PluginManager
from trellis.plugin.pipelines import PipelineReport
from trellis.progress import ConsoleReporter


async def ask(prompt: str) -> bool:
    """Ask a yes/no question on the terminal."""
    try:
        answer = await asyncio.to_thread(input, f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower().startswith("y")


def build_manager(args: Any, confirm: Callable[[str], Any] | None = None) -> PluginManager:
    """
    Build a manager from the configuration file named on the command line.

    Raises:
        ConfigError: If the configuration file is malformed
        ConfigurationError: If a plugin declaration is malformed
    """
    from tpm.cli import configure_logging

    settings, specs = load_config(args.config)
    configure_logging(settings.log_level, getattr(args, "verbose", False))

    manager = PluginManager(
        settings=settings,
        host=HeadlessHost(confirm=confirm or ask),
        reporter=ConsoleReporter(),
    )
    for spec in specs:
        manager.use(spec)
    return manager


def summarize(report: PipelineReport, verbose: bool = False) -> int:
    """Print a one-line summary; return the exit code of the report."""
    if verbose or report.failures:
        print(
            f"{report.operation}: {len(report.outcomes)} processed, "
            f"{len(report.failures)} failed"
        )
    for name in report.failures:
        print(f"  failed: {name}")
    return 0 if report.ok else 1
