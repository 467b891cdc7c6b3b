"""
tpm CLI - Trellis Plugin Manager.

Usage:
    tpm install              Clone every declared plugin that is missing
    tpm update               Pull new commits for installed plugins
    tpm clean [--yes]        Remove plugin directories no longer declared
    tpm init [--force]       Write a commented default configuration file

Options:
    -c, --config FILE        Configuration file (default: trellis.toml)
    -v, --verbose            Debug logging
"""

import argparse
import logging
import sys
from pathlib import Path

from trellis.config import DEFAULT_CONFIG_FILE, ConfigError
from trellis.plugin.hooks import ConfigurationError

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class TPMError(Exception):
    """Base exception for tpm errors."""

    pass


def configure_logging(level: str = "warn", verbose: bool = False) -> None:
    """Configure root logging from a log_level setting."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else LOG_LEVELS.get(level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="tpm",
        description="Trellis Plugin Manager - asynchronous git-backed plugin manager",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_FILE,
        help=f"Configuration file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    commands.add_parser("install", help="Install missing plugins")
    commands.add_parser("update", help="Update installed plugins")

    clean = commands.add_parser("clean", help="Remove unused plugin directories")
    clean.add_argument("-y", "--yes", action="store_true", help="Skip confirmation prompt")

    init = commands.add_parser("init", help="Write a default configuration file")
    init.add_argument("--force", action="store_true", help="Overwrite an existing file")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for tpm CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "init":
            from tpm.commands.init import init_command

            return init_command(args)

        elif args.command == "install":
            from tpm.commands.install import install_command

            return install_command(args)

        elif args.command == "update":
            from tpm.commands.update import update_command

            return update_command(args)

        elif args.command == "clean":
            from tpm.commands.clean import clean_command

            return clean_command(args)

    except (TPMError, ConfigError, ConfigurationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
