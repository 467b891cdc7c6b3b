"""
Per-plugin version control operations.

Key features:
- install: shallow clone with progress streamed to the reporter
- install_with_retry: the same clone retried with exponential backoff
- has_updates: fetch, then count commits between HEAD and upstream
- update: classify the plugin as updated, up to date, not installed,
  skipped or failed, pulling only when upstream has new commits
"""

import logging
import re
from typing import TYPE_CHECKING

from trellis.core.aio import Promise, retry
from trellis.plugin.git_ops import (
    CommandOutput,
    GitError,
    clone_args,
    fetch_args,
    pull_args,
    rev_count_args,
)
from trellis.plugin.state import Status, UpdateOutcome

if TYPE_CHECKING:
    from trellis.plugin.plugin import Plugin

logger = logging.getLogger(__name__)

COMMIT_RANGE = re.compile(r"([a-f0-9]+)\.\.([a-f0-9]+)")


def remote_url(plugin: "Plugin") -> str:
    """Clone URL of a plugin; full URLs are used as given."""
    if "://" in plugin.name or plugin.name.startswith("git@"):
        return plugin.name
    return plugin.manager.settings.remote_url.format(plugin.name)


def report(plugin: "Plugin", status: Status | str, message: str = "") -> None:
    if isinstance(status, Status):
        plugin.status = status
    plugin.manager.reporter.update_entry(plugin.name, status, message)


def _progress(plugin: "Plugin"):
    def on_line(line: str) -> None:
        report(plugin, plugin.status, line)

    return on_line


def describe_failure(error: BaseException) -> str:
    """Render a git failure as "<stderr> code: <n>"."""
    stderr = (getattr(error, "stderr", "") or "").strip() or str(error) or "Unknown error"
    return f"{stderr} code: {getattr(error, 'code', None)}"


def _clone(plugin: "Plugin") -> Promise:
    settings = plugin.manager.settings
    args = clone_args(
        remote_url(plugin), plugin.get_path(), settings.git_depth, plugin.remote_branch
    )
    return plugin.manager.git.run(args, on_progress=_progress(plugin))


def _start_install(plugin: "Plugin") -> None:
    if plugin.remote_branch:
        logger.debug("Installing %s from branch: %s", plugin.name, plugin.remote_branch)
        message = f"Installing from branch: {plugin.remote_branch}"
    else:
        message = "Starting installation..."
    report(plugin, Status.INSTALLING, message)


async def _finish_install(plugin: "Plugin") -> None:
    if plugin.remote_branch:
        message = f"Installed from branch: {plugin.remote_branch}"
    else:
        message = "Installation complete"
    report(plugin, Status.INSTALLED, message)

    if plugin.colorscheme:
        await plugin.apply_theme()
    if plugin.run_action is not None:
        plugin.need_build = True


async def install(plugin: "Plugin") -> bool:
    """
    Clone a remote plugin.

    Returns:
        True once installed (local plugins succeed without cloning)

    Raises:
        GitError: If the clone fails (already reported)
    """
    if plugin.is_local or not plugin.is_remote:
        return True

    _start_install(plugin)
    result = await _clone(plugin)
    if not result.ok:
        report(plugin, Status.ERROR, f"Failed: {describe_failure(result.error)}")
        raise result.error

    await _finish_install(plugin)
    return True


async def install_with_retry(plugin: "Plugin") -> bool:
    """
    Clone a remote plugin, retrying with exponential backoff.

    Raises:
        GitError: If every attempt fails (already reported)
    """
    if plugin.is_local or not plugin.is_remote:
        return True

    installed = await plugin.is_installed()
    if installed.ok and installed.value:
        return True

    settings = plugin.manager.settings
    _start_install(plugin)
    result = await retry(lambda: _clone(plugin), settings.retry_attempts, settings.retry_delay)
    if not result.ok:
        report(plugin, Status.ERROR, f"Failed after retries: {describe_failure(result.error)}")
        raise result.error

    await _finish_install(plugin)
    return True


async def has_updates(plugin: "Plugin") -> bool:
    """
    Check whether upstream has commits missing from HEAD.

    Raises:
        GitError: If fetch or rev-list fails
    """
    if plugin.is_local or not plugin.is_remote:
        return False

    git = plugin.manager.git
    path = plugin.get_path()

    result = await git.run(fetch_args(path, plugin.remote_branch))
    if not result.ok:
        raise result.error

    result = await git.run(rev_count_args(path))
    if not result.ok:
        raise result.error

    match = re.search(r"\d+", result.value.stdout or "")
    count = int(match.group()) if match else 0
    return count > 0


def summarize_pull(output: CommandOutput, branch: str | None = None) -> str:
    """Summarize git pull output as "Already up to date" or "Updated to a..b"."""
    stdout = output.stdout or ""
    if "Already up to date" in stdout:
        return f"Already up to date on branch: {branch}" if branch else "Already up to date"
    match = COMMIT_RANGE.search(stdout)
    if match:
        suffix = f" on branch: {branch}" if branch else ""
        return f"Updated to {match.group(1)}..{match.group(2)}{suffix}"
    if branch:
        return f"Updated on branch: {branch}"
    return "Update complete"


async def update(plugin: "Plugin", skip_check: bool = False) -> UpdateOutcome:
    """
    Update a plugin checkout.

    Args:
        plugin: Plugin to update
        skip_check: Pull without checking for new commits first

    Returns:
        The classified outcome; failures are reported, never raised
    """
    if plugin.is_local or not plugin.is_remote:
        return UpdateOutcome.SKIPPED

    installed = await plugin.is_installed()
    if not installed.ok:
        report(plugin, Status.ERROR, f"Error checking installation: {installed.error}")
        return UpdateOutcome.ERROR_CHECKING
    if not installed.value:
        return UpdateOutcome.NOT_INSTALLED

    branch = plugin.remote_branch
    if not skip_check:
        report(plugin, Status.UPDATING, "Checking for updates...")
        checked = await plugin.has_updates()
        if not checked.ok:
            report(plugin, Status.ERROR, f"Error checking updates: {describe_failure(checked.error)}")
            return UpdateOutcome.ERROR_CHECKING_UPDATES
        if not checked.value:
            message = f"Up to date on branch: {branch}" if branch else "Already up to date"
            report(plugin, Status.UPDATED, message)
            return UpdateOutcome.UP_TO_DATE

    report(plugin, Status.UPDATING, f"Updating branch: {branch}" if branch else "Starting update...")
    result = await plugin.manager.git.run(
        pull_args(plugin.get_path(), branch), on_progress=_progress(plugin)
    )
    if not result.ok:
        error = result.error
        stderr = getattr(error, "stderr", "") if isinstance(error, GitError) else ""
        report(plugin, Status.ERROR, f"Failed: {(stderr or str(error)).strip()}")
        return UpdateOutcome.ERROR

    report(plugin, Status.UPDATED, summarize_pull(result.value, branch))
    return UpdateOutcome.UPDATED
