"""Single shared schedule engine service handed to every widget."""

from __future__ import annotations

import logging
from collections.abc import Callable
from time import monotonic
from typing import Any, Mapping

from .generations import RequestGenerations
from .models import ConsoleSettings, CountdownEntry, SchedulePreset, Scope
from .optimistic import OptimisticMutator
from .polling import PollingCoordinator
from .precedence import PrecedenceResolver, PrecedenceView
from .request_runner import LivenessToken, Operation, RequestOutcome, RequestRunner
from .schedule_api import ScheduleApi
from .schedule_store import ScheduleStore
from .ticker import CountdownTicker, TickLease, TimerFactory

logger = logging.getLogger(__name__)


class ScheduleEngine:
    """
    Owns the store and every component allowed to write to it.

    Construct once at startup, pass explicitly to widgets, call ``start()``
    to begin polling and ``shutdown()`` to cancel tickers, polls, and any
    completion still in flight. Widgets read through ``store``/``resolver``
    and send intents through the methods below.
    """

    def __init__(
        self,
        *,
        api: ScheduleApi,
        runner: RequestRunner,
        timer_factory: TimerFactory,
        settings: ConsoleSettings | None = None,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        self._settings = settings or ConsoleSettings.default()
        self._api = api
        self._runner = runner
        self.store = ScheduleStore(time_provider=time_provider or monotonic)
        self.generations = RequestGenerations()
        self.coordinator = PollingCoordinator(
            store=self.store,
            api=api,
            runner=runner,
            generations=self.generations,
            timer_factory=timer_factory,
            interval_seconds=self._settings.poll_interval_seconds,
        )
        self.mutator = OptimisticMutator(
            store=self.store,
            api=api,
            runner=runner,
            generations=self.generations,
            coordinator=self.coordinator,
        )
        self.resolver = PrecedenceResolver(self.store)
        self.ticker = CountdownTicker(
            self.store,
            timer_factory,
            interval_ms=self._settings.tick_interval_ms,
        )
        self._started = False
        self._shut_down = False

    @property
    def settings(self) -> ConsoleSettings:
        return self._settings

    @property
    def is_running(self) -> bool:
        return self._started and not self._shut_down

    @property
    def view(self) -> PrecedenceView:
        return self.resolver.view

    def start(self) -> Operation:
        if self._shut_down:
            raise RuntimeError("Schedule engine has been shut down.")
        self._started = True
        logger.info("Schedule engine started")
        return self.coordinator.start()

    def shutdown(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        self.coordinator.close()
        self.mutator.close()
        self.ticker.shutdown()
        self.resolver.close()
        self._runner.shutdown()
        logger.info("Schedule engine shut down")

    def entry(self, scope: Scope) -> CountdownEntry | None:
        return self.store.get(scope)

    def enable(
        self, scope: Scope, preset: SchedulePreset | Mapping[str, Any]
    ) -> Operation:
        return self.mutator.enable(scope, preset)

    def disable(self, scope: Scope) -> Operation:
        return self.mutator.disable(scope)

    def refresh_all(self, *, owner: LivenessToken | None = None) -> Operation:
        return self.coordinator.refresh_all(owner=owner)

    def refresh_one(
        self, scope: Scope, *, owner: LivenessToken | None = None
    ) -> Operation:
        return self.coordinator.refresh_one(scope, owner=owner)

    def acquire_ticks(
        self,
        scope: Scope,
        on_tick: Callable[[TickLease], None] | None = None,
    ) -> TickLease:
        return self.ticker.acquire(scope, on_tick)

    def run_now(self) -> Operation:
        """Ask the service to run the sync immediately, then resnapshot."""
        if self._shut_down:
            raise RuntimeError("Schedule engine has been shut down.")
        operation = Operation("run_now")

        def on_done(outcome: RequestOutcome) -> None:
            if self._shut_down:
                operation.resolve(None)
                return
            if not outcome.ok:
                logger.warning("Run-now request failed: %s", outcome.error)
                operation.reject(outcome.error)
                return
            self.coordinator.refresh_all()
            operation.resolve(None)

        self._runner.submit(self._api.run_now, on_done)
        return operation

    def list_entities(self, *, owner: LivenessToken | None = None) -> Operation:
        """Fetch the grouped entities the console renders toggles for."""
        operation = Operation("list_entities")
        if self._shut_down:
            operation.resolve([])
            return operation

        def on_done(outcome: RequestOutcome) -> None:
            if self._shut_down or (owner is not None and not owner.alive):
                operation.resolve([])
                return
            if not outcome.ok:
                logger.warning("Entity listing failed: %s", outcome.error)
                operation.reject(outcome.error)
                return
            operation.resolve(list(outcome.value or []))

        self._runner.submit(self._api.list_entities, on_done)
        return operation


__all__ = ["ScheduleEngine"]
