"""
tpm update command.

Pull new commits for installed plugins and the manager itself.
"""

import asyncio
from typing import Any

from tpm.commands import build_manager, summarize


def update_command(args: Any) -> int:
    """
    Execute update command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    return asyncio.run(update_async(args))


async def update_async(args: Any) -> int:
    """Async update implementation."""
    manager = build_manager(args)
    report = await manager.update()
    return summarize(report, args.verbose)
