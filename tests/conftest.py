"""
Shared fixtures.

FakeGit replaces the git subprocess with scripted results: clones create
the target directory, rev-list reports a configurable commit count and
every call is recorded.
"""

import asyncio
from pathlib import Path

import pytest

from trellis.config import Settings
from trellis.host import HeadlessHost
from trellis.plugin.git_ops import CommandOutput, GitExecutor, ProcessError
from trellis.plugin.manager import PluginManager
from trellis.progress import ProgressReporter


class RecordingReporter(ProgressReporter):
    """Reporter keeping every update in order."""

    def __init__(self):
        super().__init__()
        self.history: list[tuple[str, str, str]] = []
        self.opened = 0
        self.closed = 0

    def open(self):
        self.opened += 1
        return super().open()

    def close(self):
        self.closed += 1
        return super().close()

    def on_update(self, name, entry):
        self.history.append((name, entry.status, entry.message))


class FakeGit(GitExecutor):
    """
    Scripted git executor.

    Attributes:
        calls: Argument vectors in call order
        failures: Subcommand -> exception, or list of exceptions/None
            consumed one per call
        rev_counts: Checkout directory name -> commits behind upstream
        pull_output: stdout returned by pull
        delay: Seconds each call takes
        max_active: Highest number of concurrent calls seen
    """

    def __init__(self):
        super().__init__(timeout=5.0)
        self.calls: list[list[str]] = []
        self.failures: dict = {}
        self.rev_counts: dict[str, int] = {}
        self.pull_output = "Updating 1a2b3c4..5d6e7f8\nFast-forward\n"
        self.delay = 0.0
        self.active = 0
        self.max_active = 0

    @staticmethod
    def subcommand(args: list[str]) -> str:
        return args[2] if args[0] == "-C" else args[0]

    def calls_of(self, subcommand: str) -> list[list[str]]:
        return [args for args in self.calls if self.subcommand(args) == subcommand]

    def fail(self, subcommand: str, stderr: str = "fatal: repository not found", code: int = 128):
        error = ProcessError(
            f"Command failed with exit code: {code}", code=code, stderr=stderr
        )
        self.failures[subcommand] = error
        return error

    async def execute(self, args, timeout=None, on_progress=None):
        self.calls.append(list(args))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)

            sub = self.subcommand(args)
            failure = self.failures.get(sub)
            if isinstance(failure, list):
                failure = failure.pop(0) if failure else None
            if failure is not None:
                raise failure

            if sub == "clone":
                progress = ["Cloning into '%s'..." % Path(args[-1]).name, "Receiving objects: 100%"]
                if on_progress is not None:
                    for line in progress:
                        on_progress(line)
                Path(args[-1]).mkdir(parents=True, exist_ok=True)
                return CommandOutput(stderr="\n".join(progress), progress=progress)
            if sub == "rev-list":
                count = self.rev_counts.get(Path(args[1]).name, 0)
                return CommandOutput(stdout=f"{count}\n")
            if sub == "pull":
                if on_progress is not None:
                    on_progress("From https://example.invalid/repo")
                return CommandOutput(stdout=self.pull_output)
            return CommandOutput()
        finally:
            self.active -= 1


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary data directory, without UI delays."""
    return Settings(
        data_dir=str(tmp_path / "data"),
        close_delay=0,
        retry_delay=10,
        max_concurrent_tasks=2,
    )


@pytest.fixture
def host():
    return HeadlessHost()


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def manager(settings, host, fake_git, reporter):
    return PluginManager(settings=settings, host=host, git=fake_git, reporter=reporter)


@pytest.fixture
def make_installed():
    """Create the checkout directory of a plugin (optionally with scripts)."""

    def make(plugin, scripts: dict[str, str] | None = None) -> Path:
        path = plugin.get_path()
        path.mkdir(parents=True, exist_ok=True)
        for name, body in (scripts or {}).items():
            script = path / "plugin" / name
            script.parent.mkdir(parents=True, exist_ok=True)
            script.write_text(body)
        return path

    return make
