"""Shared per-scope one-second countdown ticking between polls."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from .models import DEFAULT_TICK_INTERVAL_MS, CountdownEntry, Scope
from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


class IntervalTimer(Protocol):
    """Repeating timer that calls back on the engine thread."""

    def start(self) -> None: ...

    def stop(self) -> None: ...


TimerFactory = Callable[[int, Callable[[], None]], IntervalTimer]


class TickLease:
    """
    One observer's claim on a scope's shared interval.

    ``ticks`` counts intervals seen by this lease only, so each widget can run
    its own every-N-ticks logic on top of the shared decrement.
    """

    def __init__(
        self,
        ticker: "CountdownTicker | None",
        scope: Scope,
        on_tick: Callable[["TickLease"], None] | None,
    ) -> None:
        self._ticker = ticker
        self.scope = scope
        self._on_tick = on_tick
        self.ticks = 0

    @property
    def active(self) -> bool:
        return self._ticker is not None

    def release(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker._release(self)

    def _deliver(self) -> None:
        if self._ticker is None:
            return
        self.ticks += 1
        if self._on_tick is not None:
            self._on_tick(self)


@dataclass(slots=True)
class _ScopeInterval:
    timer: IntervalTimer
    leases: list[TickLease] = field(default_factory=list)


class CountdownTicker:
    """
    Runs one interval per observed scope and decrements its countdown.

    The ticker only ever patches ``seconds_remaining`` on an existing confirmed
    entry, floored at 0. It never issues requests and never triggers the
    scheduled job; the next poll overwrites whatever it extrapolated.
    """

    def __init__(
        self,
        store: ScheduleStore,
        timer_factory: TimerFactory,
        *,
        interval_ms: int = DEFAULT_TICK_INTERVAL_MS,
    ) -> None:
        self._store = store
        self._timer_factory = timer_factory
        self._interval_ms = max(1, int(interval_ms))
        self._intervals: dict[str, _ScopeInterval] = {}
        self._closed = False

    def acquire(
        self,
        scope: Scope,
        on_tick: Callable[[TickLease], None] | None = None,
    ) -> TickLease:
        """Attach an observer to ``scope``, starting its interval if needed."""
        if self._closed:
            logger.debug("Ticker closed; handing out inert lease for %s", scope)
            return TickLease(None, scope, on_tick)

        lease = TickLease(self, scope, on_tick)
        interval = self._intervals.get(scope.key)
        if interval is None:
            timer = self._timer_factory(
                self._interval_ms, lambda key=scope.key: self._on_interval(key)
            )
            interval = _ScopeInterval(timer=timer)
            self._intervals[scope.key] = interval
            timer.start()
        interval.leases.append(lease)
        return lease

    def lease_count(self, scope: Scope) -> int:
        interval = self._intervals.get(scope.key)
        return 0 if interval is None else len(interval.leases)

    def running_scope_keys(self) -> list[str]:
        return sorted(self._intervals)

    def tick(self, scope: Scope) -> CountdownEntry | None:
        """Decrement one scope by a single step. Returns the resulting entry."""
        entry = self._store.get(scope)
        if entry is None or not entry.has_countdown:
            return entry
        remaining = int(entry.seconds_remaining or 0)
        if remaining <= 0:
            return entry
        return self._store.patch(scope, seconds_remaining=remaining - 1)

    def shutdown(self) -> None:
        """Cancel every interval and detach every lease."""
        self._closed = True
        intervals, self._intervals = self._intervals, {}
        for interval in intervals.values():
            interval.timer.stop()
            for lease in interval.leases:
                lease._ticker = None

    def _on_interval(self, key: str) -> None:
        interval = self._intervals.get(key)
        if interval is None or not interval.leases:
            return
        self.tick(interval.leases[0].scope)
        for lease in list(interval.leases):
            lease._deliver()

    def _release(self, lease: TickLease) -> None:
        interval = self._intervals.get(lease.scope.key)
        if interval is None:
            return
        if lease in interval.leases:
            interval.leases.remove(lease)
        if not interval.leases:
            interval.timer.stop()
            self._intervals.pop(lease.scope.key, None)


__all__ = ["CountdownTicker", "IntervalTimer", "TickLease", "TimerFactory"]
