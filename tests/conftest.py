import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from collections.abc import Callable
from typing import Any

import pytest

from groupsync.engine import ScheduleEngine
from groupsync.models import ConsoleSettings, CountdownEntry, Scope
from groupsync.request_runner import RequestOutcome, run_request
from groupsync.schedule_api import EntitySummary


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    def __init__(self, interval_ms: int, callback: Callable[[], None]) -> None:
        self.interval_ms = interval_ms
        self.callback = callback
        self.active = False
        self.start_count = 0
        self.stop_count = 0

    def start(self) -> None:
        self.start_count += 1
        self.active = True

    def stop(self) -> None:
        self.stop_count += 1
        self.active = False

    def fire(self, times: int = 1) -> None:
        for _ in range(times):
            if self.active:
                self.callback()


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval_ms: int, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval_ms, callback)
        self.timers.append(timer)
        return timer

    def active_timers(self, interval_ms: int | None = None) -> list[FakeTimer]:
        return [
            timer
            for timer in self.timers
            if timer.active and (interval_ms is None or timer.interval_ms == interval_ms)
        ]

    def fire(self, interval_ms: int, times: int = 1) -> None:
        for _ in range(times):
            for timer in self.active_timers(interval_ms):
                timer.fire()


class ManualRequestRunner:
    """Holds submitted requests until a test completes them, in any order."""

    def __init__(self) -> None:
        self.pending: list[tuple[Callable[[], Any], Callable[[RequestOutcome], None]]] = []
        self.closed = False

    def submit(
        self,
        request: Callable[[], Any],
        on_done: Callable[[RequestOutcome], None],
    ) -> None:
        if self.closed:
            return
        self.pending.append((request, on_done))

    def shutdown(self) -> None:
        self.closed = True

    def complete(self, index: int = 0) -> RequestOutcome:
        request, on_done = self.pending.pop(index)
        outcome = run_request(request)
        on_done(outcome)
        return outcome

    def complete_last(self) -> RequestOutcome:
        return self.complete(len(self.pending) - 1)

    def complete_all(self) -> None:
        while self.pending:
            self.complete(0)


class FakeScheduleApi:
    """In-memory scheduling service; ``server`` holds what polls return."""

    def __init__(self) -> None:
        self.server: dict[str, CountdownEntry] = {}
        self.embedded: dict[str, CountdownEntry | None] = {}
        self.failures: dict[str, Exception] = {}
        self.entities: list[EntitySummary] = []
        self.calls: list[tuple[str, Any]] = []
        self.closed = False

    def set_server(self, *entries: CountdownEntry) -> None:
        self.server = {entry.key: entry for entry in entries}

    def _maybe_fail(self, name: str) -> None:
        error = self.failures.pop(name, None)
        if error is not None:
            raise error

    def enable_global(self, preset):
        self.calls.append(("enable_global", dict(preset)))
        self._maybe_fail("enable_global")
        return self.embedded.get("global")

    def enable_entity(self, entity_id, preset):
        self.calls.append(("enable_entity", (entity_id, dict(preset))))
        self._maybe_fail("enable_entity")
        return self.embedded.get(f"entity:{entity_id}")

    def disable(self, scope: Scope) -> None:
        self.calls.append(("disable", scope))
        self._maybe_fail("disable")
        self.server.pop(scope.key, None)

    def fetch_countdown(self, scope: Scope) -> CountdownEntry:
        self.calls.append(("fetch_countdown", scope))
        self._maybe_fail("fetch_countdown")
        entry = self.server.get(scope.key)
        if entry is None:
            return CountdownEntry.confirmed(scope, None, enabled=False)
        return entry

    def fetch_all_countdowns(self) -> list[CountdownEntry]:
        self.calls.append(("fetch_all_countdowns", None))
        self._maybe_fail("fetch_all_countdowns")
        return list(self.server.values())

    def run_now(self) -> None:
        self.calls.append(("run_now", None))
        self._maybe_fail("run_now")

    def list_entities(self) -> list[EntitySummary]:
        self.calls.append(("list_entities", None))
        self._maybe_fail("list_entities")
        return list(self.entities)

    def close(self) -> None:
        self.closed = True

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(100.0)


@pytest.fixture
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture
def runner() -> ManualRequestRunner:
    return ManualRequestRunner()


@pytest.fixture
def api() -> FakeScheduleApi:
    return FakeScheduleApi()


@pytest.fixture
def make_engine(api, runner, timers, clock):
    """Build a ``ScheduleEngine`` wired to the shared fakes."""
    engines: list[ScheduleEngine] = []

    def _make(settings: ConsoleSettings | None = None, **overrides) -> ScheduleEngine:
        engine = ScheduleEngine(
            api=overrides.get("api", api),
            runner=overrides.get("runner", runner),
            timer_factory=overrides.get("timer_factory", timers),
            settings=settings,
            time_provider=clock,
        )
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.shutdown()
