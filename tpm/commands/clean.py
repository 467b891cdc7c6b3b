"""
tpm clean command.

Remove plugin directories that no declared plugin owns. Asks for
confirmation unless --yes is given.
"""

import asyncio
from typing import Any

from tpm.commands import build_manager, summarize


def clean_command(args: Any) -> int:
    """
    Execute clean command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    return asyncio.run(clean_async(args))


async def clean_async(args: Any) -> int:
    """Async clean implementation."""
    confirm = (lambda prompt: True) if args.yes else None
    manager = build_manager(args, confirm=confirm)
    report = await manager.clean()

    removed = [name for name, outcome in report.outcomes.items() if outcome == "removed"]
    if args.verbose and removed:
        print(f"Removed: {', '.join(sorted(removed))}")
    return summarize(report, args.verbose)
