"""Authoritative in-memory schedule map shared by every display widget."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from time import monotonic
from types import MappingProxyType
from typing import Mapping

from .models import CountdownEntry, EntryState, Scope

logger = logging.getLogger(__name__)


class StoreChangeType(StrEnum):
    """Kinds of mutation reported to store subscribers."""

    SET = "set"
    PATCHED = "patched"
    REMOVED = "removed"
    REPLACED = "replaced"


@dataclass(frozen=True, slots=True)
class StoreChange:
    """Immutable notification describing which scope keys changed."""

    type: StoreChangeType
    keys: frozenset[str]


class ScheduleStore:
    """
    Mapping from scope key to ``CountdownEntry``.

    Writes are wholesale (``set_many``/``replace_all``) or field-level ticker
    patches. A patch never creates an entry, and wholesale writes always win
    over whatever the ticker extrapolated. Subscribers are notified only when
    the map actually changes, so re-applying an identical snapshot is silent.
    """

    def __init__(self, *, time_provider: Callable[[], float] = monotonic) -> None:
        self._time_provider = time_provider
        self._entries: dict[str, CountdownEntry] = {}
        self._provisional_since: dict[str, float] = {}
        self._subscribers: list[Callable[[StoreChange], None]] = []

    def subscribe(self, callback: Callable[[StoreChange], None]) -> None:
        """Register a change subscriber if it is not already registered."""
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[StoreChange], None]) -> None:
        """Remove a change subscriber."""
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, scope: object) -> bool:
        return isinstance(scope, Scope) and scope.key in self._entries

    def get(self, scope: Scope) -> CountdownEntry | None:
        return self._entries.get(scope.key)

    def entries(self) -> Mapping[str, CountdownEntry]:
        """Read-only view of the current map."""
        return MappingProxyType(self._entries)

    def snapshot(self) -> dict[str, CountdownEntry]:
        return dict(self._entries)

    def scopes(self) -> list[Scope]:
        return sorted(
            (entry.scope for entry in self._entries.values()),
            key=Scope.sort_key,
        )

    def set_many(self, entries: Iterable[CountdownEntry]) -> StoreChange | None:
        """Replace the given scopes wholesale; other scopes are untouched."""
        changed: set[str] = set()
        for entry in entries:
            if self._write(entry):
                changed.add(entry.key)
        return self._notify(StoreChangeType.SET, changed)

    def replace_all(
        self,
        entries: Iterable[CountdownEntry],
        *,
        preserve: Iterable[str] = (),
    ) -> StoreChange | None:
        """
        Make the map hold exactly ``entries``.

        Keys listed in ``preserve`` keep their current value (present or
        absent) regardless of what ``entries`` says about them.
        """
        preserved = set(preserve)
        incoming: dict[str, CountdownEntry] = {}
        for entry in entries:
            if entry.key not in preserved:
                incoming[entry.key] = entry

        changed: set[str] = set()
        for key in list(self._entries):
            if key in preserved or key in incoming:
                continue
            self._delete(key)
            changed.add(key)
        for entry in incoming.values():
            if self._write(entry):
                changed.add(entry.key)
        return self._notify(StoreChangeType.REPLACED, changed)

    def patch(
        self, scope: Scope, *, seconds_remaining: int
    ) -> CountdownEntry | None:
        """Ticker-only update of ``seconds_remaining`` on an existing entry."""
        current = self._entries.get(scope.key)
        if current is None or current.state is not EntryState.CONFIRMED:
            return None
        if current.seconds_remaining is None:
            return None
        updated = current.with_seconds(seconds_remaining)
        if updated == current:
            return current
        self._entries[scope.key] = updated
        self._notify(StoreChangeType.PATCHED, {scope.key})
        return updated

    def remove(self, scope: Scope) -> CountdownEntry | None:
        removed = self._entries.get(scope.key)
        if removed is None:
            return None
        self._delete(scope.key)
        self._notify(StoreChangeType.REMOVED, {scope.key})
        return removed

    def remove_where(
        self, predicate: Callable[[CountdownEntry], bool]
    ) -> list[CountdownEntry]:
        """Remove every entry matching ``predicate`` in one notification."""
        removed = [entry for entry in self._entries.values() if predicate(entry)]
        for entry in removed:
            self._delete(entry.key)
        self._notify(StoreChangeType.REMOVED, {entry.key for entry in removed})
        return removed

    def provisional_age(self, scope: Scope, *, now: float | None = None) -> float | None:
        """Seconds since ``scope`` became provisional, or ``None``."""
        started = self._provisional_since.get(scope.key)
        if started is None:
            return None
        resolved_now = self._time_provider() if now is None else float(now)
        return max(0.0, resolved_now - started)

    def _write(self, entry: CountdownEntry) -> bool:
        current = self._entries.get(entry.key)
        if current == entry:
            return False
        self._entries[entry.key] = entry
        if entry.is_provisional:
            if current is None or not current.is_provisional:
                self._provisional_since[entry.key] = self._time_provider()
        else:
            self._provisional_since.pop(entry.key, None)
        return True

    def _delete(self, key: str) -> None:
        self._entries.pop(key, None)
        self._provisional_since.pop(key, None)

    def _notify(
        self, change_type: StoreChangeType, keys: set[str]
    ) -> StoreChange | None:
        if not keys:
            return None
        change = StoreChange(type=change_type, keys=frozenset(keys))
        logger.debug("Store %s: %s", change_type.value, sorted(keys))
        for callback in list(self._subscribers):
            callback(change)
        return change


__all__ = ["ScheduleStore", "StoreChange", "StoreChangeType"]
