"""Main console window: global and per-entity auto-sync controls."""

from __future__ import annotations

import os
from collections.abc import Callable

from PySide6 import QtCore, QtGui, QtWidgets

from .engine import ScheduleEngine
from .engine_runtime import EngineRuntimeController
from .floating_timer import FloatingTimerWindow
from .models import ConsoleSettings, Scope
from .precedence import PrecedenceView
from .request_runner import LivenessToken, Operation, RequestRunner
from .schedule_api import EntitySummary, ScheduleApi
from .scheduler_toggle import DialogFactory, SchedulerToggle
from .settings_store import SettingsStore, apply_env_overrides, merge_ui_state
from .ticker import TimerFactory

_DISABLE_FLOATING_TIMER_ENV_VAR = "GROUPSYNC_DISABLE_FLOATING_TIMER"


def _env_var_enabled(name: str) -> bool:
    raw_value = os.environ.get(name)
    if raw_value is None:
        return False
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


class MainWindow(QtWidgets.QMainWindow):
    """Desktop window wiring one schedule engine to every control."""

    def __init__(
        self,
        *,
        settings_store: SettingsStore | None = None,
        settings: ConsoleSettings | None = None,
        api_factory: Callable[[ConsoleSettings], ScheduleApi] | None = None,
        runner_factory: Callable[[QtCore.QObject], RequestRunner] | None = None,
        timer_factory: TimerFactory | None = None,
        dialog_factory: DialogFactory | None = None,
        enable_floating_timer: bool | None = None,
        parent: QtWidgets.QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings_store = settings_store or SettingsStore()
        # What is on disk, without environment overrides; only UI state is saved back.
        self._stored_settings = self._settings_store.load()
        self._settings = settings or apply_env_overrides(self._stored_settings)
        self._settings.ensure_defaults()

        self._runtime = EngineRuntimeController(
            settings=self._settings,
            api_factory=api_factory,
            runner_factory=runner_factory,
            timer_factory=timer_factory,
            parent=self,
        )
        self._runtime.error_occurred.connect(self._handle_runtime_error)

        self._dialog_factory = dialog_factory
        self._enable_floating_timer = enable_floating_timer
        self._owner = LivenessToken("main-window")
        self._engine: ScheduleEngine | None = None
        self._global_toggle: SchedulerToggle | None = None
        self._entity_toggles: dict[str, SchedulerToggle] = {}
        self._floating_timer: FloatingTimerWindow | None = None
        self._shutdown_complete = False

        self._init_window()
        self._init_layout()
        self._start_engine()
        self._update_control_states()

    @property
    def settings(self) -> ConsoleSettings:
        return self._settings

    @property
    def engine(self) -> ScheduleEngine | None:
        return self._engine

    @property
    def global_toggle(self) -> SchedulerToggle | None:
        return self._global_toggle

    @property
    def floating_timer(self) -> FloatingTimerWindow | None:
        return self._floating_timer

    def entity_toggles(self) -> list[SchedulerToggle]:
        return list(self._entity_toggles.values())

    def entity_toggle(self, entity_id: str) -> SchedulerToggle | None:
        return self._entity_toggles.get(entity_id)

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:
        try:
            self._perform_shutdown()
            super().closeEvent(event)
        except KeyboardInterrupt:
            event.accept()

    def exit_to_desktop(self) -> None:
        self.close()

    def reload_entities(self) -> Operation | None:
        if self._engine is None:
            return None
        operation = self._engine.list_entities(owner=self._owner)
        operation.add_done_callback(self._on_entities_loaded)
        return operation

    def run_now(self) -> Operation | None:
        if self._engine is None:
            return None
        try:
            operation = self._engine.run_now()
        except RuntimeError as exc:
            self._handle_runtime_error(str(exc))
            return None
        self.status_label.setText("Sync requested")
        operation.add_done_callback(self._on_run_now_done)
        return operation

    def refresh(self) -> Operation | None:
        if self._engine is None:
            return None
        operation = self._engine.refresh_all(owner=self._owner)
        self._runtime.report(operation)
        return operation

    def set_floating_timer_visible(self, visible: bool) -> None:
        self._settings.show_floating_timer = bool(visible)
        if self._floating_timer is not None:
            if visible:
                self._floating_timer.activate()
            else:
                self._floating_timer.deactivate()
        self._save_settings()
        self._update_control_states()

    def _is_floating_timer_enabled(self) -> bool:
        if self._enable_floating_timer is not None:
            return bool(self._enable_floating_timer)
        return not _env_var_enabled(_DISABLE_FLOATING_TIMER_ENV_VAR)

    def _init_window(self) -> None:
        self.setWindowTitle("GroupSync Auto-Sync Console")
        self.resize(720, 520)
        self.setMinimumSize(560, 360)

    def _init_layout(self) -> None:
        central = QtWidgets.QWidget(self)
        self.setCentralWidget(central)

        root = QtWidgets.QVBoxLayout(central)
        root.setContentsMargins(14, 14, 14, 14)
        root.setSpacing(10)

        runtime_bar = QtWidgets.QHBoxLayout()
        runtime_bar.setSpacing(8)

        self.run_now_button = QtWidgets.QPushButton("Run Now", self)
        self.run_now_button.clicked.connect(self.run_now)
        runtime_bar.addWidget(self.run_now_button)

        self.refresh_button = QtWidgets.QPushButton("Refresh", self)
        self.refresh_button.clicked.connect(self.refresh)
        runtime_bar.addWidget(self.refresh_button)

        self.floating_timer_button = QtWidgets.QPushButton("Hide Timer", self)
        self.floating_timer_button.clicked.connect(self._toggle_floating_timer)
        runtime_bar.addWidget(self.floating_timer_button)

        runtime_bar.addStretch(1)

        self.status_label = QtWidgets.QLabel("Idle", self)
        self.status_label.setObjectName("runtime_status_label")
        runtime_bar.addWidget(self.status_label)

        root.addLayout(runtime_bar)

        global_group = QtWidgets.QGroupBox("Global Auto-Sync", self)
        self._global_layout = QtWidgets.QVBoxLayout(global_group)
        self._global_layout.setContentsMargins(8, 8, 8, 8)
        root.addWidget(global_group)

        entity_group = QtWidgets.QGroupBox("Per-Entity Auto-Sync", self)
        entity_group_layout = QtWidgets.QVBoxLayout(entity_group)
        entity_group_layout.setContentsMargins(8, 8, 8, 8)
        entity_group_layout.setSpacing(6)

        entity_bar = QtWidgets.QHBoxLayout()
        self.reload_entities_button = QtWidgets.QPushButton("Reload Entities", self)
        self.reload_entities_button.clicked.connect(self.reload_entities)
        entity_bar.addWidget(self.reload_entities_button)
        entity_bar.addStretch(1)
        entity_group_layout.addLayout(entity_bar)

        self.global_notice_label = QtWidgets.QLabel(
            "Global auto-sync is on; per-entity schedules are hidden.", self
        )
        self.global_notice_label.setObjectName("global_notice_label")
        self.global_notice_label.setWordWrap(True)
        self.global_notice_label.hide()
        entity_group_layout.addWidget(self.global_notice_label)

        self.empty_entities_label = QtWidgets.QLabel("No entities loaded.", self)
        entity_group_layout.addWidget(self.empty_entities_label)

        scroll_area = QtWidgets.QScrollArea(self)
        scroll_area.setWidgetResizable(True)
        scroll_area.setFrameShape(QtWidgets.QFrame.Shape.NoFrame)
        entity_container = QtWidgets.QWidget(scroll_area)
        self._entity_layout = QtWidgets.QVBoxLayout(entity_container)
        self._entity_layout.setContentsMargins(0, 0, 0, 0)
        self._entity_layout.setSpacing(4)
        self._entity_layout.addStretch(1)
        scroll_area.setWidget(entity_container)
        entity_group_layout.addWidget(scroll_area, 1)

        root.addWidget(entity_group, 1)

    def _start_engine(self) -> None:
        try:
            engine = self._runtime.start()
        except Exception as exc:
            self._handle_runtime_error(f"Start failed: {exc}")
            return

        self._engine = engine
        engine.resolver.subscribe(self._on_view_changed)
        self._on_view_changed(engine.view)

        self._global_toggle = self._build_toggle(
            engine, Scope.global_(), "All entities"
        )
        self._global_layout.addWidget(self._global_toggle)

        if self._is_floating_timer_enabled():
            timer = FloatingTimerWindow(engine=engine, settings=self._settings)
            self._floating_timer = timer
            if self._settings.show_floating_timer:
                timer.activate()

        if self.status_label.text() == "Idle":
            self.status_label.setText("Running")
        self.reload_entities()

    def _build_toggle(
        self, engine: ScheduleEngine, scope: Scope, label: str
    ) -> SchedulerToggle:
        toggle = SchedulerToggle(
            engine=engine,
            scope=scope,
            label=label,
            dialog_factory=self._dialog_factory,
            parent=self,
        )
        toggle.error_occurred.connect(self._handle_runtime_error)
        return toggle

    def _on_entities_loaded(self, operation: Operation) -> None:
        if not self._owner.alive or self._engine is None:
            return
        if operation.error is not None:
            self._handle_runtime_error(f"Entity list failed: {operation.error}")
            return
        self._populate_entity_toggles(self._engine, operation.value or [])

    def _populate_entity_toggles(
        self, engine: ScheduleEngine, entities: list[EntitySummary]
    ) -> None:
        self._clear_entity_toggles()
        for entity in entities:
            if entity.entity_id in self._entity_toggles:
                continue
            toggle = self._build_toggle(
                engine, Scope.entity(entity.entity_id), entity.display_name
            )
            self._entity_layout.insertWidget(self._entity_layout.count() - 1, toggle)
            self._entity_toggles[entity.entity_id] = toggle
        self.empty_entities_label.setVisible(not self._entity_toggles)

    def _clear_entity_toggles(self) -> None:
        toggles, self._entity_toggles = self._entity_toggles, {}
        for toggle in toggles.values():
            toggle.dispose()
            self._entity_layout.removeWidget(toggle)
            toggle.deleteLater()

    def _on_view_changed(self, view: PrecedenceView) -> None:
        self.global_notice_label.setVisible(view.global_enabled)

    def _on_run_now_done(self, operation: Operation) -> None:
        if not self._owner.alive:
            return
        if operation.error is not None:
            self._handle_runtime_error(f"Run now failed: {operation.error}")
            return
        self.status_label.setText("Sync started")

    def _toggle_floating_timer(self) -> None:
        self.set_floating_timer_visible(not self._settings.show_floating_timer)

    def _perform_shutdown(self) -> None:
        if self._shutdown_complete:
            return
        self._shutdown_complete = True
        self._owner.cancel()

        if self._engine is not None:
            self._engine.resolver.unsubscribe(self._on_view_changed)
        self._clear_entity_toggles()
        if self._global_toggle is not None:
            self._global_toggle.dispose()
        self._dispose_floating_timer()

        try:
            self._runtime.stop()
        except Exception as exc:
            self._handle_runtime_error(f"Stop failed: {exc}")
        self._engine = None
        self._save_settings()

    def _dispose_floating_timer(self) -> None:
        if self._floating_timer is None:
            return
        timer = self._floating_timer
        self._floating_timer = None
        timer.dispose()
        timer.close()
        timer.deleteLater()

    def _save_settings(self) -> None:
        self._settings.ensure_defaults()
        merged = merge_ui_state(self._stored_settings, self._settings)
        try:
            self._settings_store.save(merged)
        except OSError as exc:
            self._handle_runtime_error(f"Save failed: {exc}")
            return
        self._stored_settings = merged

    @QtCore.Slot(str)
    def _handle_runtime_error(self, message: str) -> None:
        if not message:
            return
        self.status_label.setText(message)

    def _update_control_states(self) -> None:
        is_running = self._engine is not None and self._engine.is_running
        self.run_now_button.setEnabled(is_running)
        self.refresh_button.setEnabled(is_running)
        self.reload_entities_button.setEnabled(is_running)
        self.floating_timer_button.setEnabled(self._floating_timer is not None)
        self.floating_timer_button.setText(
            "Hide Timer" if self._settings.show_floating_timer else "Show Timer"
        )


__all__ = ["MainWindow"]
