"""Enable/stop control for one schedule scope with a live countdown chip."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Mapping

from PySide6 import QtCore, QtGui, QtWidgets

from .engine import ScheduleEngine
from .errors import PresetValidationError
from .models import CountdownEntry, SchedulePreset, Scope
from .precedence import PrecedenceView
from .request_runner import LivenessToken, Operation
from .scheduler_dialog import SchedulerDialog
from .ticker import TickLease

DialogFactory = Callable[[QtWidgets.QWidget, str], SchedulerDialog]


def format_countdown(seconds_remaining: int | float | None) -> str:
    """Return ``HH:MM:SS`` text; unknown countdowns render as zeros."""
    if seconds_remaining is None:
        return "00:00:00"
    value = max(0, int(seconds_remaining))
    hours, remainder = divmod(value, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def _default_dialog_factory(parent: QtWidgets.QWidget, title: str) -> SchedulerDialog:
    return SchedulerDialog(title=title, parent=parent)


class SchedulerToggle(QtWidgets.QFrame):
    """
    Shows "Enable" when the scope has no schedule, "Stop" plus a countdown
    chip when it has one, and nothing at all while the global schedule
    suppresses a per-entity scope.
    """

    error_occurred = QtCore.Signal(str)

    def __init__(
        self,
        *,
        engine: ScheduleEngine,
        scope: Scope,
        label: str = "",
        dialog_factory: DialogFactory | None = None,
        refresh_ticks: int | None = None,
        parent: QtWidgets.QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._engine = engine
        self._scope = scope
        self._label_text = label or ("All entities" if scope.is_global else str(scope))
        self._dialog_factory = dialog_factory or _default_dialog_factory
        self._refresh_ticks = max(
            1,
            int(
                refresh_ticks
                if refresh_ticks is not None
                else engine.settings.toggle_refresh_ticks
            ),
        )
        self._owner = LivenessToken(f"toggle:{scope.key}")
        self._dialog: SchedulerDialog | None = None
        self._suppressed = False
        self._disposed = False

        self.setObjectName("scheduler_toggle")
        self._init_layout()

        self._engine.resolver.subscribe(self._on_view_changed)
        self._lease: TickLease = self._engine.acquire_ticks(scope, self._on_tick)
        self._render(self._engine.view)
        if not self._suppressed:
            self._track(self._engine.refresh_one(scope, owner=self._owner))

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def is_suppressed(self) -> bool:
        return self._suppressed

    @property
    def is_running(self) -> bool:
        return not self.stop_button.isHidden()

    @property
    def chip_text(self) -> str:
        return self.countdown_chip.text()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:
        self.dispose()
        super().closeEvent(event)

    def open_dialog(self) -> SchedulerDialog:
        if self._dialog is None:
            dialog = self._dialog_factory(
                self, f"Enable Auto-Sync: {self._label_text}"
            )
            dialog.preset_accepted.connect(self.enable_with_preset)
            dialog.finished.connect(self._on_dialog_finished)
            self._dialog = dialog
        self._dialog.open()
        return self._dialog

    def enable_with_preset(
        self, preset: SchedulePreset | Mapping[str, Any]
    ) -> Operation | None:
        """Enable this scope, then resnapshot every scope once it settles."""
        if self._disposed:
            return None
        try:
            operation = self._engine.enable(self._scope, preset)
        except (PresetValidationError, RuntimeError) as exc:
            self._report(str(exc))
            return None
        operation.add_done_callback(self._on_enable_done)
        return operation

    def disable(self) -> Operation | None:
        if self._disposed:
            return None
        try:
            operation = self._engine.disable(self._scope)
        except RuntimeError as exc:
            self._report(str(exc))
            return None
        self._track(operation)
        return operation

    def dispose(self) -> None:
        """Stop ticking and ignore every completion still pending."""
        if self._disposed:
            return
        self._disposed = True
        self._owner.cancel()
        self._lease.release()
        self._engine.resolver.unsubscribe(self._on_view_changed)
        if self._dialog is not None:
            self._dialog.close()
            self._dialog = None

    def _init_layout(self) -> None:
        layout = QtWidgets.QHBoxLayout(self)
        layout.setContentsMargins(6, 4, 6, 4)
        layout.setSpacing(8)

        self.name_label = QtWidgets.QLabel(self._label_text, self)
        self.name_label.setObjectName("scheduler_toggle_name_label")
        layout.addWidget(self.name_label, 1)

        self.countdown_chip = QtWidgets.QLabel(format_countdown(None), self)
        self.countdown_chip.setObjectName("scheduler_toggle_chip")
        self.countdown_chip.setStyleSheet(
            "QLabel#scheduler_toggle_chip {"
            " font-family: monospace; padding: 1px 6px; border-radius: 5px;"
            " background: rgba(46, 125, 50, 40); }"
            "QLabel#scheduler_toggle_chip[provisional=\"true\"] {"
            " background: rgba(120, 120, 120, 40); }"
        )
        layout.addWidget(self.countdown_chip)

        self.enable_button = QtWidgets.QPushButton("Enable Auto-Sync", self)
        self.enable_button.clicked.connect(self.open_dialog)
        layout.addWidget(self.enable_button)

        self.stop_button = QtWidgets.QPushButton("Stop", self)
        self.stop_button.clicked.connect(self.disable)
        layout.addWidget(self.stop_button)

    def _on_view_changed(self, view: PrecedenceView) -> None:
        if not self._disposed:
            self._render(view)

    def _render(self, view: PrecedenceView) -> None:
        self._suppressed = view.is_suppressed(self._scope)
        self.setHidden(self._suppressed)
        if self._suppressed:
            return

        entry = self._engine.resolver.visible_entry(self._scope)
        running = entry is not None and entry.enabled
        self.enable_button.setHidden(running)
        self.stop_button.setHidden(not running)
        self.countdown_chip.setHidden(not running)
        if running:
            self._render_chip(entry)

    def _render_chip(self, entry: CountdownEntry) -> None:
        self.countdown_chip.setText(format_countdown(entry.seconds_remaining))
        self.countdown_chip.setProperty("provisional", entry.is_provisional)
        style = self.countdown_chip.style()
        if style is not None:
            style.unpolish(self.countdown_chip)
            style.polish(self.countdown_chip)

    def _on_tick(self, lease: TickLease) -> None:
        if self._disposed or self._suppressed:
            return
        # Periodic refresh failures are logged by the coordinator only.
        if lease.ticks % self._refresh_ticks == 0:
            self._engine.refresh_one(self._scope, owner=self._owner)

    def _on_enable_done(self, operation: Operation) -> None:
        if not self._owner.alive:
            return
        if operation.error is not None:
            self._report(str(operation.error))
            return
        self._engine.refresh_all(owner=self._owner)

    def _on_dialog_finished(self, _result: int) -> None:
        self._dialog = None

    def _track(self, operation: Operation) -> None:
        operation.add_done_callback(self._report_failure)

    def _report_failure(self, operation: Operation) -> None:
        if operation.error is not None:
            self._report(str(operation.error))

    def _report(self, message: str) -> None:
        if self._owner.alive and message:
            self.error_occurred.emit(message)


__all__ = ["SchedulerToggle", "format_countdown"]
