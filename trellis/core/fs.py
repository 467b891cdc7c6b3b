"""
Async filesystem helpers.

Existence probes and directory scans go through aiofiles; recursive delete
runs shutil.rmtree in a worker thread.
"""

import asyncio
import shutil
from pathlib import Path

import aiofiles.os


class FilesystemError(Exception):
    """Raised when a stat, scan or delete fails."""

    pass


async def is_dir(path: Path | str) -> bool:
    """Return True if path exists and is a directory."""
    try:
        return await aiofiles.os.path.isdir(path)
    except OSError as e:
        raise FilesystemError(f"Failed to stat {path}: {e}") from e


async def scan_dir(path: Path | str) -> list[tuple[str, str]]:
    """
    List the entries of a directory.

    Returns:
        (name, type) pairs where type is "directory", "file", "link" or "other"

    Raises:
        FilesystemError: If the directory cannot be scanned
    """
    try:
        entries = await aiofiles.os.scandir(path)
        pairs = []
        with entries:
            for entry in entries:
                if entry.is_symlink():
                    kind = "link"
                elif entry.is_dir():
                    kind = "directory"
                elif entry.is_file():
                    kind = "file"
                else:
                    kind = "other"
                pairs.append((entry.name, kind))
        return sorted(pairs)
    except OSError as e:
        raise FilesystemError(f"Failed to scan {path}: {e}") from e


async def remove_tree(path: Path | str) -> None:
    """
    Recursively delete a directory.

    Raises:
        FilesystemError: If the directory cannot be removed
    """
    try:
        await asyncio.to_thread(shutil.rmtree, path)
    except OSError as e:
        raise FilesystemError(f"Failed to remove {path}: {e}") from e
