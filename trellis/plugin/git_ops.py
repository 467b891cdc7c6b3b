"""
Git Operations for Plugin Management.

This module runs git as an external process for installs and updates.

Key features:
- Asynchronous execution with a timeout on every invocation
- stderr streamed line by line to a progress callback
- Argument builders for clone, fetch, rev-list and pull
"""

import asyncio
import codecs
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from trellis.core.aio import Promise

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class GitError(Exception):
    """Base exception for git-related errors."""

    pass


class ProcessError(GitError):
    """Raised when git exits with a non-zero code."""

    def __init__(
        self,
        message: str,
        code: int | None,
        stdout: str = "",
        stderr: str = "",
        signal: int | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.stdout = stdout
        self.stderr = stderr
        self.signal = signal


class GitTimeoutError(GitError):
    """Raised when git exceeds its timeout."""

    def __init__(self, message: str, timeout: float, stderr: str = ""):
        super().__init__(message)
        self.timeout = timeout
        self.stderr = stderr
        self.code = None


@dataclass
class CommandOutput:
    """
    Output of a successful git invocation.

    Attributes:
        stdout: Captured standard output
        stderr: Captured standard error
        code: Exit code (always 0)
        signal: Terminating signal, if any
        progress: stderr lines in the order they were streamed
    """

    stdout: str = ""
    stderr: str = ""
    code: int = 0
    signal: int | None = None
    progress: list[str] = field(default_factory=list)


def split_progress(data: str) -> list[str]:
    """
    Split a chunk of git progress output into non-empty lines.

    git rewrites progress lines in place with carriage returns, so both
    "\\r" and "\\n" end a line.
    """
    return [line.strip() for line in data.replace("\r", "\n").split("\n") if line.strip()]


class LineBuffer:
    """Accumulates stream chunks and yields complete lines."""

    def __init__(self):
        self._pending = ""

    def feed(self, chunk: str) -> list[str]:
        data = (self._pending + chunk).replace("\r", "\n")
        *complete, self._pending = data.split("\n")
        return [line.strip() for line in complete if line.strip()]

    def flush(self) -> list[str]:
        rest, self._pending = self._pending, ""
        return split_progress(rest)


def clone_args(
    url: str, path: Path | str, depth: int | None = 1, branch: str | None = None
) -> list[str]:
    """Arguments of a shallow single-branch clone."""
    args = ["clone"]
    if depth:
        args.append(f"--depth={depth}")
    args.extend(["--single-branch", "--progress"])
    if branch:
        args.append(f"--branch={branch}")
    args.extend([url, str(path)])
    return args


def fetch_args(path: Path | str, branch: str | None = None) -> list[str]:
    """Arguments fetching the tracked (or the given) remote branch."""
    args = ["-C", str(path), "fetch", "--quiet", "origin"]
    if branch:
        args.append(f"{branch}:refs/remotes/origin/{branch}")
    return args


def rev_count_args(path: Path | str, upstream: str = "@{upstream}") -> list[str]:
    """Arguments counting commits between HEAD and upstream."""
    return ["-C", str(path), "rev-list", "--count", f"HEAD..{upstream}"]


def pull_args(path: Path | str, branch: str | None = None) -> list[str]:
    """Arguments pulling the tracked (or the given) remote branch."""
    args = ["-C", str(path), "pull", "--progress"]
    if branch:
        args.extend(["origin", branch])
    return args


class GitExecutor:
    """
    Runs git commands asynchronously.

    Every invocation is bounded by a timeout. A timed-out process is killed;
    anything it already wrote to disk is left in place.
    """

    def __init__(self, binary: str = "git", timeout: float = 60.0):
        """
        Initialize GitExecutor.

        Args:
            binary: git executable
            timeout: Default timeout in seconds
        """
        self.binary = binary
        self.timeout = timeout

    def run(
        self,
        args: list[str],
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Promise:
        """
        Run ``git <args>``.

        Returns:
            Promise settled with a CommandOutput, or failed with ProcessError,
            GitTimeoutError or GitError
        """
        return Promise.from_coroutine(self.execute, args, timeout, on_progress)

    async def execute(
        self,
        args: list[str],
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> CommandOutput:
        """Coroutine behind run(); raises instead of returning a failure."""
        timeout = self.timeout if timeout is None else timeout
        cmd = [self.binary, *args]
        logger.debug("Running %s", " ".join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise GitError(f"{self.binary} command not found. Please install git.") from e
        except OSError as e:
            raise GitError(f"Failed to start {self.binary}: {e}") from e

        progress: list[str] = []
        stderr_chunks: list[str] = []

        def emit(lines: list[str]) -> None:
            for line in lines:
                progress.append(line)
                if on_progress is not None:
                    try:
                        on_progress(line)
                    except Exception as e:
                        logger.warning("Progress callback failed: %s", e)

        async def pump_stderr() -> None:
            buffer = LineBuffer()
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            while True:
                chunk = await process.stderr.read(1024)
                if not chunk:
                    break
                text = decoder.decode(chunk)
                stderr_chunks.append(text)
                emit(buffer.feed(text))
            emit(buffer.flush())

        async def communicate() -> bytes:
            stdout, _, _ = await asyncio.gather(
                process.stdout.read(), pump_stderr(), process.wait()
            )
            return stdout

        try:
            stdout = await asyncio.wait_for(communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise GitTimeoutError(
                f"git {args[0] if args else ''} timed out after {timeout} seconds",
                timeout=timeout,
                stderr="".join(stderr_chunks),
            ) from e

        code = process.returncode
        signal = -code if code is not None and code < 0 else None
        stdout_text = stdout.decode("utf-8", errors="replace")
        stderr_text = "".join(stderr_chunks)

        if code != 0:
            raise ProcessError(
                f"Command failed with exit code: {code}",
                code=code,
                stdout=stdout_text,
                stderr=stderr_text,
                signal=signal,
            )

        return CommandOutput(
            stdout=stdout_text,
            stderr=stderr_text,
            code=code,
            signal=signal,
            progress=progress,
        )
