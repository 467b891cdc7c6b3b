"""
Trigger Bus - in-process registry of host trigger registrations.

This module implements the registration side of lazy loading:
1. register(kind, matcher, callback, once): attach a callback to a trigger
2. dispatch(kind, name, payload): fire every matching registration
3. Groups: registrations can be cleared together once a plugin has loaded

Registrations support:
- Exact or glob matchers (``*`` matches within a dot-separated segment)
- An optional sub-pattern matched against the dispatch subject, where
  ``*`` matches any characters
- One-shot ("once") semantics: removed before the callback runs
- Priority-based execution (higher priority = earlier execution)
"""

import fnmatch
import re
import warnings
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TriggerError(Exception):
    """Base exception for trigger bus errors."""

    pass


class RegistrationError(TriggerError):
    """Raised when a registration is malformed."""

    pass


class TriggerKind(Enum):
    """Kinds of host occurrences that can trigger a load."""

    EVENT = "event"
    FILETYPE = "filetype"
    COMMAND = "command"
    COMPLETION = "completion"
    KEY = "key"


@dataclass
class Registration:
    """
    A registered trigger callback.

    Attributes:
        handle: Unique handle returned by register()
        kind: Trigger kind
        matcher: Exact name or glob pattern
        callback: Function taking the dispatch payload
        once: Remove the registration before its first invocation
        group: Optional group name for bulk removal
        pattern: Optional file-style glob matched against the dispatch subject
        priority: Higher priority executes first
        options: Kind-specific extras (e.g. key mode)
    """

    handle: int
    kind: TriggerKind
    matcher: str
    callback: Callable[[Any], Any]
    once: bool = True
    group: str | None = None
    pattern: str | None = None
    priority: int = 0
    options: dict[str, Any] = field(default_factory=dict)
    _regex: re.Pattern | None = None

    def matches(self, name: str, subject: str | None) -> bool:
        if self.matcher != name and not (self._regex and self._regex.match(name)):
            return False
        if self.pattern is None:
            return True
        if subject is None:
            return False
        return fnmatch.fnmatchcase(subject, self.pattern)


def _glob_to_regex(pattern: str) -> re.Pattern:
    """
    Convert a glob pattern to a compiled regex.

    ``*`` matches any characters within a segment (not across dots).
    """
    escaped = re.escape(pattern)
    regex_pattern = escaped.replace(r"\*", "[^.]*")
    return re.compile(f"^{regex_pattern}$")


class TriggerBus:
    """
    Registration and dispatch of trigger callbacks.

    Callbacks run synchronously in priority order; a failing callback emits
    a RuntimeWarning and does not stop the others. Return values are
    collected and returned from dispatch().
    """

    def __init__(self):
        self._registrations: dict[int, Registration] = {}
        self._registration_counter = 0

    def _next_handle(self) -> int:
        self._registration_counter += 1
        return self._registration_counter

    def register(
        self,
        kind: TriggerKind,
        matcher: str,
        callback: Callable[[Any], Any],
        once: bool = True,
        group: str | None = None,
        pattern: str | None = None,
        priority: int = 0,
        **options: Any,
    ) -> int:
        """
        Register a trigger callback.

        Args:
            kind: Trigger kind
            matcher: Exact name or glob pattern
            callback: Function taking the payload
            once: Remove before the first invocation
            group: Group name for clear_group()
            pattern: Glob matched against the dispatch subject
            priority: Execution priority (higher = earlier)

        Returns:
            Registration handle

        Raises:
            RegistrationError: If matcher is empty or callback not callable
        """
        if not isinstance(kind, TriggerKind):
            raise RegistrationError(f"Unknown trigger kind: {kind!r}")
        if not matcher:
            raise RegistrationError("Trigger matcher must be a non-empty string")
        if not callable(callback):
            raise RegistrationError(f"Trigger callback for '{matcher}' is not callable")

        handle = self._next_handle()
        self._registrations[handle] = Registration(
            handle=handle,
            kind=kind,
            matcher=matcher,
            callback=callback,
            once=once,
            group=group,
            pattern=pattern,
            priority=priority,
            options=options,
            _regex=_glob_to_regex(matcher) if "*" in matcher else None,
        )
        return handle

    def unregister(self, handle: int) -> bool:
        """Remove a registration. Returns False if it was already gone."""
        return self._registrations.pop(handle, None) is not None

    def clear_group(self, group: str) -> int:
        """Remove every registration in a group. Returns the number removed."""
        handles = [h for h, r in self._registrations.items() if r.group == group]
        for handle in handles:
            del self._registrations[handle]
        return len(handles)

    def registrations(
        self, kind: TriggerKind | None = None, group: str | None = None
    ) -> list[Registration]:
        """List registrations, optionally filtered by kind and group."""
        return [
            r
            for r in self._registrations.values()
            if (kind is None or r.kind is kind) and (group is None or r.group == group)
        ]

    def is_registered(self, kind: TriggerKind, name: str) -> bool:
        return any(
            r.matcher == name or (r._regex is not None and r._regex.match(name))
            for r in self.registrations(kind)
        )

    def _find(self, kind: TriggerKind, name: str, subject: str | None) -> list[Registration]:
        found = [r for r in self.registrations(kind) if r.matches(name, subject)]
        return sorted(found, key=lambda r: (-r.priority, r.handle))

    def dispatch(
        self,
        kind: TriggerKind,
        name: str,
        payload: Any = None,
        subject: str | None = None,
        group: str | None = None,
    ) -> list[Any]:
        """
        Fire every registration matching (kind, name[, subject]).

        Args:
            kind: Trigger kind
            name: Dispatched name (event, filetype, command, key)
            payload: Value passed to each callback
            subject: Value matched against registration sub-patterns
            group: Restrict dispatch to one group

        Returns:
            Callback return values in execution order
        """
        results = []
        for registration in self._find(kind, name, subject):
            if group is not None and registration.group != group:
                continue
            if registration.once:
                if not self.unregister(registration.handle):
                    continue
            try:
                results.append(registration.callback(payload))
            except Exception as e:
                warnings.warn(
                    f"Trigger callback failed for '{name}': {e}",
                    RuntimeWarning,
                    stacklevel=2,
                )
        return results
