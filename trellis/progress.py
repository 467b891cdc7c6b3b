"""
Progress reporting.

Reporters receive ``(name, status, message)`` upserts from the pipelines.
They are purely presentational and can be replaced freely.
"""

import sys
import time
from dataclasses import dataclass, field
from typing import TextIO


@dataclass
class ProgressEntry:
    """Latest status of one plugin."""

    status: str
    message: str = ""
    time: float = field(default_factory=time.time)


class ProgressReporter:
    """
    Keeps the latest entry per plugin and renders them as a table.

    Subclasses override on_update() to present each change as it happens.
    """

    title = "Trellis Plugin Manager"

    def __init__(self):
        self.entries: dict[str, ProgressEntry] = {}
        self.visible = False

    def open(self) -> "ProgressReporter":
        self.visible = True
        return self

    def close(self) -> "ProgressReporter":
        self.visible = False
        return self

    def clear(self) -> "ProgressReporter":
        self.entries = {}
        return self

    def update_entry(self, name: str, status: str, message: str = "") -> "ProgressReporter":
        entry = ProgressEntry(status=str(status), message=message or "")
        self.entries[name] = entry
        self.on_update(name, entry)
        return self

    def on_update(self, name: str, entry: ProgressEntry) -> None:
        pass

    def render(self, width: int = 80) -> list[str]:
        """Render the entries sorted by name under a header."""
        rule = "=" * width
        lines = [rule, f"{'Plugin':<40} {'Status':<10} Message", rule]
        for name in sorted(self.entries):
            entry = self.entries[name]
            lines.append(f"{name[:40]:<40} {entry.status:<10} {entry.message}".rstrip())
        return lines


class ConsoleReporter(ProgressReporter):
    """Writes every update as one line to a stream."""

    def __init__(self, stream: TextIO | None = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def open(self):
        if not self.visible:
            self.stream.write(f"{self.title}\n")
        return super().open()

    def on_update(self, name, entry):
        self.stream.write(f"{name[:40]:<40} {entry.status:<10} {entry.message}".rstrip() + "\n")
        self.stream.flush()
