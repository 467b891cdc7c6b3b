"""
TOML reading and writing.

Files are parsed with tomllib and written with tomlkit, so documents built
with tomlkit keep their comments.
"""

import tomllib
from pathlib import Path
from typing import Any

import tomlkit


class TOMLError(Exception):
    """Raised when a TOML file cannot be read, parsed or written."""

    pass


def read_toml(file_path: Path) -> dict[str, Any]:
    """
    Parse a TOML file into plain Python values.

    Raises:
        TOMLError: If the file is missing, unreadable or malformed
    """
    if not file_path.is_file():
        raise TOMLError(f"TOML file not found: {file_path}")
    try:
        return tomllib.loads(file_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise TOMLError(f"{file_path} is not valid TOML: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise TOMLError(f"Cannot read {file_path}: {e}") from e


def write_toml(file_path: Path, data: dict[str, Any] | tomlkit.TOMLDocument) -> None:
    """
    Serialize data (or a tomlkit document) to file_path, creating parent
    directories as needed.

    Raises:
        TOMLError: If the file cannot be written
    """
    text = tomlkit.dumps(data)
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise TOMLError(f"Cannot write {file_path}: {e}") from e
