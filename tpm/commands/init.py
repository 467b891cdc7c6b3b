"""
tpm init command.

Write a commented configuration file with every default setting.
"""

import sys
from typing import Any

from trellis.config import write_default_config


def init_command(args: Any) -> int:
    """
    Execute init command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    path = args.config
    if path.exists() and not args.force:
        print(f"Error: {path} already exists (use --force to overwrite)", file=sys.stderr)
        return 1

    write_default_config(path)
    print(f"Wrote {path}")
    return 0
