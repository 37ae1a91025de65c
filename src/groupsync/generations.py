"""Per-scope request generation tags used to drop superseded responses."""

from __future__ import annotations

from collections.abc import Iterable

ALL_SCOPES_KEY = "*"


class RequestGenerations:
    """
    Hands out monotonically increasing tags per scope key.

    A response is applied only while the tag it was issued with is still the
    latest one for its key. ``ALL_SCOPES_KEY`` tags full snapshots. Keys with
    an enable/disable command in flight are tracked separately so polls can
    leave them alone until the command settles.
    """

    def __init__(self) -> None:
        self._tags: dict[str, int] = {}
        self._commands_in_flight: dict[str, int] = {}

    def current(self, key: str) -> int:
        return self._tags.get(key, 0)

    def issue(self, key: str) -> int:
        tag = self._tags.get(key, 0) + 1
        self._tags[key] = tag
        return tag

    def supersede(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.issue(key)

    def is_current(self, key: str, tag: int) -> bool:
        return self._tags.get(key, 0) == tag

    def baseline(self) -> dict[str, int]:
        """Copy of every scope tag, taken when a snapshot request is issued."""
        return {key: tag for key, tag in self._tags.items() if key != ALL_SCOPES_KEY}

    def advanced_since(self, baseline: dict[str, int]) -> set[str]:
        """Scope keys whose tag moved after ``baseline`` was taken."""
        return {
            key
            for key, tag in self._tags.items()
            if key != ALL_SCOPES_KEY and baseline.get(key, 0) != tag
        }

    def begin_command(self, key: str) -> None:
        self._commands_in_flight[key] = self._commands_in_flight.get(key, 0) + 1

    def end_command(self, key: str) -> None:
        remaining = self._commands_in_flight.get(key, 0) - 1
        if remaining > 0:
            self._commands_in_flight[key] = remaining
        else:
            self._commands_in_flight.pop(key, None)

    def has_command_in_flight(self, key: str) -> bool:
        return key in self._commands_in_flight

    def keys_with_commands_in_flight(self) -> set[str]:
        return set(self._commands_in_flight)


__all__ = ["ALL_SCOPES_KEY", "RequestGenerations"]
