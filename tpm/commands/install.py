"""
tpm install command.

Clone every declared plugin that is not installed yet.
"""

import asyncio
from typing import Any

from tpm.commands import build_manager, summarize


def install_command(args: Any) -> int:
    """
    Execute install command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    return asyncio.run(install_async(args))


async def install_async(args: Any) -> int:
    """Async install implementation."""
    manager = build_manager(args)
    report = await manager.install()
    return summarize(report, args.verbose)
