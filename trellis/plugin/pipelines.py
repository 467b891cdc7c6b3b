"""
Install, update and clean pipelines.

Each pipeline selects its plugins, runs one bounded task per plugin on a
TaskQueue and returns a PipelineReport once the queue has drained. A
plugin's failure is recorded and reported; it never aborts the batch.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from trellis.core import fs
from trellis.core.aio import delay, try_await
from trellis.core.queue import TaskQueue
from trellis.plugin import sync
from trellis.plugin.hooks import HookError
from trellis.plugin.resolver import find_cycles
from trellis.plugin.state import Status, UpdateOutcome

if TYPE_CHECKING:
    from trellis.plugin.manager import PluginManager
    from trellis.plugin.plugin import Plugin

logger = logging.getLogger(__name__)


@dataclass
class PipelineReport:
    """
    Summary of one pipeline run.

    Attributes:
        operation: "install", "update" or "clean"
        outcomes: Per-plugin (or per-directory) outcome
        failures: Names whose operation failed
    """

    operation: str
    outcomes: dict[str, Any] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def record(self, name: str, outcome: Any, failed: bool = False) -> None:
        self.outcomes[name] = outcome
        if failed and name not in self.failures:
            self.failures.append(name)


async def run_bounded(manager: "PluginManager", jobs: list) -> None:
    """Run coroutine functions on a TaskQueue and wait for it to drain."""
    loop = asyncio.get_running_loop()
    finished = loop.create_future()
    queue = TaskQueue(manager.settings.max_concurrent_tasks)

    for job in jobs:
        queue.enqueue(lambda done, job=job: job())

    def complete() -> None:
        if not finished.done():
            finished.set_result(None)

    queue.on_complete(complete)
    await finished


async def _close_reporter(manager: "PluginManager") -> None:
    close_delay = manager.settings.close_delay
    if close_delay > 0:
        await delay(close_delay)
    manager.reporter.close()


async def _installed(plugin: "Plugin") -> bool | None:
    result = await plugin.is_installed()
    if not result.ok:
        logger.error("Failed to check installation of %s: %s", plugin.name, result.error)
        return None
    return result.value


async def install(manager: "PluginManager") -> PipelineReport:
    """
    Clone every remote plugin that is not installed yet, then build and
    load the ones that have a build action.
    """
    report = PipelineReport("install")
    manager.record_cycles(find_cycles(manager.registry))

    selected = []
    for plugin in manager.registry:
        if plugin.is_local or not plugin.is_remote:
            continue
        if await _installed(plugin) is False:
            selected.append(plugin)

    if not selected:
        logger.info("No plugins to install.")
        return report

    manager.reporter.open()
    use_retry = manager.settings.install_retry

    def make_job(plugin: "Plugin"):
        async def job() -> None:
            promise = plugin.install_with_retry() if use_retry else plugin.install()
            result = await promise
            if result.ok:
                report.record(plugin.name, Status.INSTALLED)
            else:
                report.record(plugin.name, Status.ERROR, failed=True)

        return job

    await run_bounded(manager, [make_job(p) for p in selected])
    await _close_reporter(manager)

    for plugin in selected:
        if not plugin.need_build:
            continue
        if plugin.loaded:
            try:
                plugin.run_build()
            except HookError as e:
                logger.error("%s", e)
            continue
        task = plugin.load(do_action=True)
        if task is not None:
            await task
    return report


async def update(manager: "PluginManager") -> PipelineReport:
    """Update every installed remote plugin and the manager's own checkout."""
    report = PipelineReport("update")
    manager.record_cycles(find_cycles(manager.registry))

    selected = []
    candidates = list(manager.registry)
    if manager.registry.get(manager.self_entry.name) is None:
        candidates.append(manager.self_entry)

    for plugin in candidates:
        if plugin.is_local or not plugin.is_remote:
            report.record(plugin.name, UpdateOutcome.SKIPPED)
            continue
        installed = await _installed(plugin)
        if installed is None:
            report.record(plugin.name, UpdateOutcome.ERROR_CHECKING, failed=True)
        elif installed:
            selected.append(plugin)
        else:
            report.record(plugin.name, UpdateOutcome.NOT_INSTALLED)

    if not selected:
        logger.info("No plugins to update.")
        return report

    manager.reporter.open()
    for plugin in selected:
        sync.report(plugin, Status.PENDING, "Queued for update...")

    def make_job(plugin: "Plugin"):
        async def job() -> None:
            result = await plugin.update()
            if result.ok:
                outcome = result.value
                report.record(plugin.name, outcome, failed=outcome.failed)
            else:
                logger.error("Update of %s failed: %s", plugin.name, result.error)
                report.record(plugin.name, UpdateOutcome.ERROR, failed=True)

        return job

    await run_bounded(manager, [make_job(p) for p in selected])
    await _close_reporter(manager)
    return report


async def find_orphans(manager: "PluginManager") -> list[Path]:
    """Directories under the install roots that belong to no registered plugin."""
    settings = manager.settings
    known = manager.registry.leaf_names() | {manager.self_entry.plugin_name}

    orphans = []
    for root in (settings.start_dir, settings.opt_dir):
        if not await fs.is_dir(root):
            continue
        for name, kind in await fs.scan_dir(root):
            if kind == "directory" and name not in known:
                orphans.append(root / name)
    return orphans


def orphan_key(path: Path) -> str:
    """Root-qualified name of an orphan, e.g. "opt/old-plugin"."""
    return f"{path.parent.name}/{path.name}"


async def clean(manager: "PluginManager") -> PipelineReport:
    """Remove unregistered plugin directories after confirmation."""
    report = PipelineReport("clean")
    reporter = manager.reporter

    try:
        orphans = await find_orphans(manager)
    except fs.FilesystemError as e:
        logger.error("Failed to scan plugin directories: %s", e)
        report.record("scan", "error", failed=True)
        return report

    if not orphans:
        logger.info("No unused plugins to clean.")
        return report

    reporter.open()
    for path in orphans:
        reporter.update_entry(orphan_key(path), Status.PENDING, "Marked for removal")

    if not await manager.host.confirm(f"Remove {len(orphans)} unused plugins?"):
        for path in orphans:
            report.record(orphan_key(path), "kept")
        reporter.close()
        return report

    def make_job(path: Path):
        async def job() -> None:
            name = orphan_key(path)
            reporter.update_entry(name, "CLEANING", "Removing...")
            result = await try_await(fs.remove_tree(path))
            if result.ok:
                reporter.update_entry(name, "REMOVED", "Successfully removed")
                report.record(name, "removed")
            else:
                logger.error("Failed to remove %s: %s", path, result.error)
                reporter.update_entry(name, Status.ERROR, "Failed to remove")
                report.record(name, "error", failed=True)

        return job

    await run_bounded(manager, [make_job(p) for p in orphans])
    await _close_reporter(manager)
    return report
