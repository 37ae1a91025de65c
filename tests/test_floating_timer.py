from PySide6 import QtCore, QtGui, QtWidgets

from groupsync.floating_timer import FloatingTimerWindow
from groupsync.models import ConsoleSettings, CountdownEntry, Scope

GLOBAL = Scope.global_()
P1 = Scope.entity("p1")
P2 = Scope.entity("p2")


def _get_qapp() -> QtWidgets.QApplication:
    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication(["pytest", "-platform", "offscreen"])
    return app


def _window(engine, settings=None) -> FloatingTimerWindow:
    _get_qapp()
    return FloatingTimerWindow(engine=engine, settings=settings or ConsoleSettings())


def test_floating_timer_uses_frameless_topmost_tool_window_flags(make_engine):
    window = _window(make_engine())
    flags = window.windowFlags()

    assert bool(flags & QtCore.Qt.WindowType.Tool)
    assert bool(flags & QtCore.Qt.WindowType.FramelessWindowHint)
    assert bool(flags & QtCore.Qt.WindowType.WindowStaysOnTopHint)
    assert window.testAttribute(QtCore.Qt.WidgetAttribute.WA_TranslucentBackground)
    window.dispose()


def test_activation_alone_shows_nothing_until_a_countdown_exists(
    make_engine, api, runner
):
    engine = make_engine()
    window = _window(engine)

    window.activate()
    runner.complete()

    assert window.is_requested is True
    assert window.snapshot().displayed is False
    assert window.isVisible() is False

    api.set_server(CountdownEntry.confirmed(GLOBAL, 45))
    engine.refresh_all()
    runner.complete()

    snapshot = window.snapshot()
    assert snapshot.displayed is True
    assert snapshot.label_text == "Auto-Sync: Global"
    assert snapshot.time_text == "00:00:45"
    assert snapshot.scope_key == "global"
    assert snapshot.pulse_active is False
    window.dispose()


def test_floating_timer_follows_the_soonest_schedule(make_engine):
    engine = make_engine()
    window = _window(engine)
    window.activate()

    engine.store.set_many(
        [CountdownEntry.confirmed(P1, 30), CountdownEntry.confirmed(P2, 20)]
    )
    assert window.snapshot().scope_key == "entity:p2"
    assert window.tracked_scope == P2
    assert window.snapshot().label_text == "Auto-Sync: Entity"

    engine.store.remove(P2)
    assert window.snapshot().scope_key == "entity:p1"
    assert window.tracked_scope == P1
    assert engine.ticker.lease_count(P2) == 0
    window.dispose()


def test_floating_timer_keeps_its_scope_ticking_and_pulses_near_zero(
    make_engine, timers
):
    engine = make_engine()
    window = _window(engine)
    window.activate()
    engine.store.set_many([CountdownEntry.confirmed(GLOBAL, 12)])

    timers.fire(1000, times=2)

    snapshot = window.snapshot()
    assert snapshot.seconds_remaining == 10
    assert snapshot.time_text == "00:00:10"
    assert snapshot.pulse_active is True
    window.dispose()


def test_deactivate_hides_and_dispose_releases_the_lease(make_engine, timers):
    engine = make_engine()
    window = _window(engine)
    window.activate()
    engine.store.set_many([CountdownEntry.confirmed(GLOBAL, 100)])
    assert window.snapshot().displayed is True

    window.deactivate()
    assert window.snapshot().displayed is False

    window.dispose()
    engine.store.set_many([CountdownEntry.confirmed(P1, 5)])

    assert window.tracked_scope is None
    assert timers.active_timers(1000) == []
    assert window.snapshot().scope_key == "global"


def test_offscreen_position_falls_back_to_visible_screen_area(make_engine):
    _get_qapp()
    settings = ConsoleSettings(floating_timer_x=-50000, floating_timer_y=-50000)
    window = _window(make_engine(), settings)

    primary = QtGui.QGuiApplication.primaryScreen()
    assert primary is not None
    assert primary.availableGeometry().contains(
        QtCore.QPoint(settings.floating_timer_x, settings.floating_timer_y)
    )
    assert window.pos() == QtCore.QPoint(
        settings.floating_timer_x, settings.floating_timer_y
    )
    window.dispose()
