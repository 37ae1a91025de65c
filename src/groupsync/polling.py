"""Periodic and on-demand reconciliation of the store against the server."""

from __future__ import annotations

import logging

from .generations import ALL_SCOPES_KEY, RequestGenerations
from .models import DEFAULT_POLL_INTERVAL_SECONDS, CountdownEntry, Scope
from .request_runner import LivenessToken, Operation, RequestOutcome, RequestRunner
from .schedule_api import ScheduleApi
from .schedule_store import ScheduleStore
from .ticker import IntervalTimer, TimerFactory

logger = logging.getLogger(__name__)


class PollingCoordinator:
    """
    Fetches countdown state and writes it into the store wholesale.

    ``refresh_all`` replaces the whole map with the server's snapshot, so a
    scope missing from the response is gone afterwards. ``refresh_one``
    replaces a single scope. Results are applied in completion order and
    dropped when superseded, when their owner has unmounted, or after
    ``close()``. A failed fetch leaves the store untouched.
    """

    def __init__(
        self,
        *,
        store: ScheduleStore,
        api: ScheduleApi,
        runner: RequestRunner,
        generations: RequestGenerations,
        timer_factory: TimerFactory,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self._api = api
        self._runner = runner
        self._generations = generations
        self._timer_factory = timer_factory
        self._interval_seconds = max(0.001, float(interval_seconds))
        self._timer: IntervalTimer | None = None
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._timer is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    def start(self) -> Operation:
        """Start the background cadence and issue an immediate snapshot poll."""
        if self._closed:
            raise RuntimeError("PollingCoordinator has been closed.")
        if self._timer is None:
            interval_ms = max(1, int(round(self._interval_seconds * 1000)))
            self._timer = self._timer_factory(interval_ms, self._on_background_tick)
            self._timer.start()
            logger.info("Background polling started every %.1fs", self._interval_seconds)
        return self.refresh_all()

    def stop(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.stop()
            logger.info("Background polling stopped")

    def close(self) -> None:
        """Stop polling and discard every response still in flight."""
        self.stop()
        self._closed = True

    def refresh_all(self, *, owner: LivenessToken | None = None) -> Operation:
        operation = Operation("refresh_all")
        if self._closed:
            operation.resolve(None)
            return operation

        tag = self._generations.issue(ALL_SCOPES_KEY)
        baseline = self._generations.baseline()

        def on_done(outcome: RequestOutcome) -> None:
            if not self._should_apply(ALL_SCOPES_KEY, tag, owner, "refresh_all"):
                operation.resolve(None)
                return
            if not outcome.ok:
                logger.warning("Countdown snapshot poll failed: %s", outcome.error)
                operation.reject(outcome.error)
                return

            preserve = self._generations.advanced_since(baseline)
            preserve |= self._generations.keys_with_commands_in_flight()
            if preserve:
                logger.debug("Snapshot keeps newer local state for %s", sorted(preserve))
            entries = list(outcome.value)
            self._store.replace_all(entries, preserve=preserve)
            # Single-scope polls issued before this snapshot are now older than it.
            written = set(baseline) | {entry.key for entry in entries}
            self._generations.supersede(written - preserve)
            self._warn_overdue_provisional()
            operation.resolve(self._store.snapshot())

        self._runner.submit(self._api.fetch_all_countdowns, on_done)
        return operation

    def refresh_one(
        self, scope: Scope, *, owner: LivenessToken | None = None
    ) -> Operation:
        operation = Operation(f"refresh_one:{scope.key}")
        if self._closed:
            operation.resolve(None)
            return operation

        tag = self._generations.issue(scope.key)

        def on_done(outcome: RequestOutcome) -> None:
            if not self._should_apply(scope.key, tag, owner, "refresh_one"):
                operation.resolve(None)
                return
            if self._generations.has_command_in_flight(scope.key):
                logger.debug("Dropping poll for %s: command in flight", scope)
                operation.resolve(None)
                return
            if not outcome.ok:
                logger.warning("Countdown poll for %s failed: %s", scope, outcome.error)
                operation.reject(outcome.error)
                return

            entry: CountdownEntry = outcome.value
            self._store.set_many([entry])
            operation.resolve(entry)

        self._runner.submit(lambda: self._api.fetch_countdown(scope), on_done)
        return operation

    def _should_apply(
        self,
        key: str,
        tag: int,
        owner: LivenessToken | None,
        label: str,
    ) -> bool:
        if self._closed:
            logger.debug("Dropping %s result: coordinator closed", label)
            return False
        if owner is not None and not owner.alive:
            logger.debug("Dropping %s result: %r unmounted", label, owner)
            return False
        if not self._generations.is_current(key, tag):
            logger.debug("Dropping stale %s result for %s (tag %d)", label, key, tag)
            return False
        return True

    def _warn_overdue_provisional(self) -> None:
        for scope in self._store.scopes():
            age = self._store.provisional_age(scope)
            if age is not None and age > self._interval_seconds:
                logger.warning(
                    "Schedule %s still unconfirmed after %.1fs", scope, age
                )

    def _on_background_tick(self) -> None:
        # Failures are logged in refresh_all; the next tick is the retry.
        self.refresh_all()


__all__ = ["PollingCoordinator"]
