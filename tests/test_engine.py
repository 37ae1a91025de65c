import pytest

from groupsync.errors import NetworkFailure
from groupsync.models import ConsoleSettings, CountdownEntry, Scope
from groupsync.request_runner import InlineRequestRunner, LivenessToken
from groupsync.schedule_api import EntitySummary

GLOBAL = Scope.global_()
P1 = Scope.entity("p1")


def test_engine_uses_settings_for_poll_and_tick_intervals(make_engine, timers, runner):
    settings = ConsoleSettings(poll_interval_seconds=30.0, tick_interval_ms=250)
    engine = make_engine(settings)

    engine.start()
    lease = engine.acquire_ticks(GLOBAL)

    assert engine.is_running is True
    assert engine.settings is settings
    assert sorted(timer.interval_ms for timer in timers.active_timers()) == [250, 30000]
    lease.release()


def test_shutdown_is_idempotent_and_cancels_everything(make_engine, api, runner, timers):
    engine = make_engine()
    engine.start()
    api.set_server(CountdownEntry.confirmed(GLOBAL, 60))
    engine.acquire_ticks(GLOBAL)

    engine.shutdown()
    engine.shutdown()

    assert engine.is_running is False
    assert timers.active_timers() == []
    assert runner.closed is True
    with pytest.raises(RuntimeError):
        engine.start()
    with pytest.raises(RuntimeError):
        engine.enable(GLOBAL, {"scheduleType": "everyNMinutes", "minutesInterval": 5})


def test_late_completion_after_shutdown_never_touches_the_store(
    make_engine, api, runner
):
    engine = make_engine()
    api.set_server(CountdownEntry.confirmed(GLOBAL, 60))
    engine.start()
    views = []
    engine.resolver.subscribe(views.append)

    engine.shutdown()
    runner.complete()

    assert GLOBAL not in engine.store
    assert views == []


def test_run_now_resnapshots_after_success(make_engine, api, runner):
    engine = make_engine()
    api.set_server(CountdownEntry.confirmed(P1, 12))

    operation = engine.run_now()
    runner.complete()

    assert operation.succeeded is True
    assert len(runner.pending) == 1
    runner.complete()
    assert api.call_names() == ["run_now", "fetch_all_countdowns"]
    assert engine.entry(P1).seconds_remaining == 12


def test_run_now_failure_rejects_without_polling(make_engine, api, runner):
    engine = make_engine()
    api.failures["run_now"] = NetworkFailure("busy", status_code=409)

    operation = engine.run_now()
    runner.complete()

    assert operation.error.status_code == 409
    assert runner.pending == []


def test_list_entities_resolves_rows_and_reports_failures(make_engine, api, runner):
    engine = make_engine()
    api.entities = [EntitySummary("p1", name="Acme")]

    listed = engine.list_entities()
    runner.complete()
    api.failures["list_entities"] = NetworkFailure("down")
    failed = engine.list_entities()
    runner.complete()

    assert listed.value == [EntitySummary("p1", name="Acme")]
    assert str(failed.error) == "down"


def test_list_entities_for_unmounted_owner_resolves_empty(make_engine, api, runner):
    engine = make_engine()
    api.entities = [EntitySummary("p1")]
    owner = LivenessToken("window")

    operation = engine.list_entities(owner=owner)
    owner.cancel()
    runner.complete()

    assert operation.value == []


def test_inline_runner_applies_results_synchronously(make_engine, api):
    api.set_server(CountdownEntry.confirmed(GLOBAL, 42))
    engine = make_engine(runner=InlineRequestRunner())

    initial = engine.start()

    assert initial.succeeded is True
    assert engine.view.active.scope == GLOBAL
    assert engine.view.active.seconds_remaining == 42
