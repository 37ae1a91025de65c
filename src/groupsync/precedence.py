"""Derived view: which schedule fires next and whether global suppresses the rest."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from .models import CountdownEntry, Scope, ScopeKind
from .schedule_store import ScheduleStore, StoreChange


@dataclass(frozen=True, slots=True)
class ActiveSchedule:
    """The enabled schedule with the fewest known seconds remaining."""

    scope: Scope
    seconds_remaining: int
    next_run_at: datetime | None = None

    @property
    def mode(self) -> str:
        return self.scope.kind.value

    @property
    def entity_id(self) -> str | None:
        return self.scope.entity_id

    @property
    def label(self) -> str:
        if self.scope.kind is ScopeKind.GLOBAL:
            return "Auto-Sync: Global"
        return "Auto-Sync: Entity"


@dataclass(frozen=True, slots=True)
class PrecedenceView:
    """Immutable result of one precedence computation."""

    global_enabled: bool = False
    active: ActiveSchedule | None = None
    visible_keys: frozenset[str] = frozenset()

    def is_suppressed(self, scope: Scope) -> bool:
        """Per-entity controls are hidden while the global schedule is enabled."""
        return self.global_enabled and not scope.is_global


def _active_sort_key(entry: CountdownEntry) -> tuple[int, int, str]:
    kind_rank, entity_key = entry.scope.sort_key()
    return (int(entry.seconds_remaining or 0), kind_rank, entity_key)


def resolve_precedence(
    entries: Mapping[str, CountdownEntry] | Iterable[CountdownEntry],
) -> PrecedenceView:
    """
    Compute the precedence view for a schedule map.

    Ties on ``seconds_remaining`` go to the global schedule, then to the
    entity with the lexicographically smallest id.
    """
    values = list(entries.values()) if isinstance(entries, Mapping) else list(entries)

    global_entry = next((entry for entry in values if entry.scope.is_global), None)
    global_enabled = bool(global_entry is not None and global_entry.enabled)

    candidates = [entry for entry in values if entry.has_countdown]
    active: ActiveSchedule | None = None
    if candidates:
        best = min(candidates, key=_active_sort_key)
        active = ActiveSchedule(
            scope=best.scope,
            seconds_remaining=int(best.seconds_remaining or 0),
            next_run_at=best.next_run_at,
        )

    visible = frozenset(
        entry.key
        for entry in values
        if entry.scope.is_global or not global_enabled
    )
    return PrecedenceView(
        global_enabled=global_enabled,
        active=active,
        visible_keys=visible,
    )


class PrecedenceResolver:
    """Keeps a ``PrecedenceView`` current with every store mutation."""

    def __init__(self, store: ScheduleStore) -> None:
        self._store = store
        self._view = resolve_precedence(store.entries())
        self._subscribers: list[Callable[[PrecedenceView], None]] = []
        self._store.subscribe(self._on_store_change)

    @property
    def view(self) -> PrecedenceView:
        return self._view

    @property
    def global_enabled(self) -> bool:
        return self._view.global_enabled

    @property
    def active(self) -> ActiveSchedule | None:
        return self._view.active

    def subscribe(self, callback: Callable[[PrecedenceView], None]) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[PrecedenceView], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def visible_entry(self, scope: Scope) -> CountdownEntry | None:
        """The entry a widget for ``scope`` may show, honoring suppression."""
        if self._view.is_suppressed(scope):
            return None
        return self._store.get(scope)

    def close(self) -> None:
        self._store.unsubscribe(self._on_store_change)
        self._subscribers.clear()

    def _on_store_change(self, _change: StoreChange) -> None:
        self._view = resolve_precedence(self._store.entries())
        for callback in list(self._subscribers):
            callback(self._view)


__all__ = [
    "ActiveSchedule",
    "PrecedenceResolver",
    "PrecedenceView",
    "resolve_precedence",
]
