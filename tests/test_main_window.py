import json

from PySide6 import QtCore, QtWidgets

from groupsync.errors import NetworkFailure
from groupsync.main_window import MainWindow
from groupsync.models import ConsoleSettings, CountdownEntry, Scope
from groupsync.schedule_api import EntitySummary
from groupsync.settings_store import SettingsStore

GLOBAL = Scope.global_()


class _MemorySettingsStore:
    def __init__(self, settings: ConsoleSettings) -> None:
        self._payload = settings.to_dict()
        self.save_count = 0

    def load(self) -> ConsoleSettings:
        return ConsoleSettings.from_dict(self._payload)

    def save(self, settings: ConsoleSettings) -> None:
        self.save_count += 1
        self._payload = settings.to_dict()

    @property
    def saved_settings(self) -> ConsoleSettings:
        return ConsoleSettings.from_dict(self._payload)


class _FailingSettingsStore(_MemorySettingsStore):
    def save(self, settings: ConsoleSettings) -> None:
        raise OSError("disk full")


def _get_qapp() -> QtWidgets.QApplication:
    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication(["pytest", "-platform", "offscreen"])
    return app


def _flush_events() -> None:
    app = _get_qapp()
    for _ in range(4):
        app.processEvents(
            QtCore.QEventLoop.ProcessEventsFlag.AllEvents,
            50,
        )


def _build_window(
    api,
    runner,
    timers,
    *,
    settings: ConsoleSettings | None = None,
    store_cls=_MemorySettingsStore,
    enable_floating_timer: bool = False,
) -> tuple[MainWindow, _MemorySettingsStore]:
    _get_qapp()
    settings = settings or ConsoleSettings()
    store = store_cls(settings)
    window = MainWindow(
        settings_store=store,
        settings=settings,
        api_factory=lambda _settings: api,
        runner_factory=lambda _owner: runner,
        timer_factory=timers,
        enable_floating_timer=enable_floating_timer,
    )
    window.show()
    _flush_events()
    return window, store


def test_startup_polls_builds_global_toggle_and_loads_entities(api, runner, timers):
    api.entities = [EntitySummary("p1", name="Acme"), EntitySummary("p2", alias="Beta")]
    window, _store = _build_window(api, runner, timers)

    assert window.engine is not None
    assert window.engine.is_running is True
    assert window.status_label.text() == "Running"
    assert window.global_toggle.name_label.text() == "All entities"
    assert window.run_now_button.isEnabled() is True

    runner.complete_all()

    assert [toggle.name_label.text() for toggle in window.entity_toggles()] == [
        "Acme",
        "Beta",
    ]
    assert window.empty_entities_label.isHidden() is True
    assert "fetch_all_countdowns" in api.call_names()
    assert api.call_names().count("fetch_countdown") == 3

    window.close()


def test_enabled_global_schedule_hides_entity_toggles(api, runner, timers):
    api.entities = [EntitySummary("p1", name="Acme")]
    api.set_server(
        CountdownEntry.confirmed(GLOBAL, 600),
        CountdownEntry.confirmed(Scope.entity("p1"), 30),
    )
    window, _store = _build_window(api, runner, timers)

    runner.complete_all()

    assert window.global_toggle.is_running is True
    assert window.global_notice_label.isHidden() is False
    assert window.entity_toggle("p1").is_suppressed is True
    assert window.entity_toggle("p1").isHidden() is True

    api.set_server(CountdownEntry.confirmed(Scope.entity("p1"), 30))
    window.refresh()
    runner.complete_all()

    assert window.global_notice_label.isHidden() is True
    assert window.entity_toggle("p1").isHidden() is False
    assert window.entity_toggle("p1").is_running is True

    window.close()


def test_entity_list_failure_is_shown_in_status(api, runner, timers):
    api.failures["list_entities"] = NetworkFailure("directory down")
    window, _store = _build_window(api, runner, timers)

    runner.complete_all()

    assert window.status_label.text() == "Entity list failed: directory down"
    assert window.entity_toggles() == []
    assert window.empty_entities_label.isHidden() is False

    window.close()


def test_run_now_reports_progress_and_failures(api, runner, timers):
    window, _store = _build_window(api, runner, timers)
    runner.complete_all()

    window.run_now_button.click()
    assert window.status_label.text() == "Sync requested"
    runner.complete_all()
    assert window.status_label.text() == "Sync started"

    api.failures["run_now"] = NetworkFailure("Scheduler busy", status_code=409)
    window.run_now()
    runner.complete_all()
    assert window.status_label.text() == "Run now failed: Scheduler busy"

    window.close()


def test_toggle_errors_surface_in_status_label(api, runner, timers):
    api.set_server(CountdownEntry.confirmed(GLOBAL, 600))
    window, _store = _build_window(api, runner, timers)
    runner.complete_all()
    api.failures["disable"] = NetworkFailure("Scheduler offline")

    window.global_toggle.stop_button.click()
    runner.complete_all()

    assert window.status_label.text() == "Scheduler offline"
    assert window.global_toggle.is_running is True

    window.close()


def test_floating_timer_visibility_is_persisted(api, runner, timers):
    api.set_server(CountdownEntry.confirmed(GLOBAL, 300))
    window, store = _build_window(
        api,
        runner,
        timers,
        settings=ConsoleSettings(show_floating_timer=True),
        enable_floating_timer=True,
    )
    runner.complete_all()

    assert window.floating_timer is not None
    assert window.floating_timer.snapshot().displayed is True
    assert window.floating_timer_button.text() == "Hide Timer"

    window.floating_timer_button.click()

    assert window.floating_timer.snapshot().displayed is False
    assert window.floating_timer_button.text() == "Show Timer"
    assert store.saved_settings.show_floating_timer is False

    window.close()


def test_floating_timer_can_be_disabled_entirely(api, runner, timers):
    window, _store = _build_window(api, runner, timers, enable_floating_timer=False)

    assert window.floating_timer is None
    assert window.floating_timer_button.isEnabled() is False

    window.close()


def test_close_shuts_down_engine_and_saves_settings(api, runner, timers):
    window, store = _build_window(api, runner, timers)
    runner.complete_all()
    engine = window.engine

    window.close()
    _flush_events()

    assert window.engine is None
    assert engine.is_running is False
    assert api.closed is True
    assert timers.active_timers() == []
    assert store.save_count == 1


def test_save_failure_is_reported_on_close(api, runner, timers):
    window, _store = _build_window(
        api, runner, timers, store_cls=_FailingSettingsStore
    )
    runner.complete_all()

    window.exit_to_desktop()

    assert window.status_label.text() == "Save failed: disk full"


def test_environment_overrides_are_not_written_to_settings_file(
    api, runner, timers, tmp_path, monkeypatch
):
    _get_qapp()
    file_path = tmp_path / "settings.json"
    store = SettingsStore(file_path=file_path)
    store.save(ConsoleSettings(api_base_url="https://saved.example.com/api"))
    monkeypatch.setenv("GROUPSYNC_API_TOKEN", "s3cret-from-env")
    monkeypatch.setenv("GROUPSYNC_API_URL", "https://env.example.com/api")

    window = MainWindow(
        settings_store=store,
        api_factory=lambda _settings: api,
        runner_factory=lambda _owner: runner,
        timer_factory=timers,
        enable_floating_timer=False,
    )
    runner.complete_all()

    assert window.settings.api_token == "s3cret-from-env"
    assert window.settings.api_base_url == "https://env.example.com/api"

    window.set_floating_timer_visible(False)
    window.close()
    _flush_events()

    saved = json.loads(file_path.read_text(encoding="utf-8"))
    assert saved["api_token"] is None
    assert saved["api_base_url"] == "https://saved.example.com/api"
    assert saved["show_floating_timer"] is False
