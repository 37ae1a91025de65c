"""Dialog that collects an auto-sync recurrence preset."""

from __future__ import annotations

from PySide6 import QtCore, QtWidgets

from .errors import PresetValidationError
from .models import SchedulePreset, ScheduleType

_SCHEDULE_TYPE_LABELS: tuple[tuple[str, ScheduleType], ...] = (
    ("Every N minutes", ScheduleType.EVERY_N_MINUTES),
    ("Every N hours", ScheduleType.EVERY_N_HOURS),
    ("Daily at time", ScheduleType.DAILY),
    ("Weekly (day+time)", ScheduleType.WEEKLY),
    ("Monthly (date+time)", ScheduleType.MONTHLY),
    ("Custom cron", ScheduleType.CRON),
)
_WEEKDAYS = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)
_DEFAULT_MINUTES_INTERVAL = 10
_DEFAULT_HOURS_INTERVAL = 1
_DEFAULT_TIME_OF_DAY = QtCore.QTime(9, 0)
_DEFAULT_DAY_OF_WEEK = 1
_DEFAULT_DAY_OF_MONTH = 1


class SchedulerDialog(QtWidgets.QDialog):
    """Modal preset form; emits ``preset_accepted`` with a validated preset."""

    preset_accepted = QtCore.Signal(object)

    def __init__(
        self,
        *,
        title: str,
        parent: QtWidgets.QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._accepted_preset: SchedulePreset | None = None

        self._init_window(title)
        self._init_layout()
        self.reset_form()

    @property
    def accepted_preset(self) -> SchedulePreset | None:
        return self._accepted_preset

    def reset_form(self) -> None:
        self.schedule_type_combo.setCurrentIndex(0)
        self.minutes_spin.setValue(_DEFAULT_MINUTES_INTERVAL)
        self.hours_spin.setValue(_DEFAULT_HOURS_INTERVAL)
        self.time_edit.setTime(_DEFAULT_TIME_OF_DAY)
        self.weekday_combo.setCurrentIndex(_DEFAULT_DAY_OF_WEEK)
        self.day_of_month_spin.setValue(_DEFAULT_DAY_OF_MONTH)
        self.cron_edit.clear()
        self.error_label.clear()
        self.error_label.hide()
        self._accepted_preset = None
        self._sync_field_visibility()

    def selected_schedule_type(self) -> ScheduleType:
        return ScheduleType(self.schedule_type_combo.currentData())

    def build_preset(self) -> SchedulePreset:
        """Project the form onto the fields the chosen type uses."""
        schedule_type = self.selected_schedule_type()
        preset = SchedulePreset(schedule_type=schedule_type)
        if schedule_type is ScheduleType.EVERY_N_MINUTES:
            preset.minutes_interval = int(self.minutes_spin.value())
        elif schedule_type is ScheduleType.EVERY_N_HOURS:
            preset.hours_interval = int(self.hours_spin.value())
        elif schedule_type is ScheduleType.CRON:
            preset.cron = self.cron_edit.text().strip() or None

        if schedule_type in {
            ScheduleType.DAILY,
            ScheduleType.WEEKLY,
            ScheduleType.MONTHLY,
        }:
            preset.time_of_day = self.time_edit.time().toString("HH:mm")
        if schedule_type is ScheduleType.WEEKLY:
            preset.day_of_week = int(self.weekday_combo.currentData())
        if schedule_type is ScheduleType.MONTHLY:
            preset.day_of_month = int(self.day_of_month_spin.value())
        return preset

    def accept(self) -> None:
        try:
            preset = self.build_preset().validate()
        except PresetValidationError as exc:
            self.error_label.setText(str(exc))
            self.error_label.show()
            return
        self._accepted_preset = preset
        self.preset_accepted.emit(preset)
        super().accept()

    def _init_window(self, title: str) -> None:
        self.setWindowTitle(title)
        self.setModal(True)
        self.resize(420, 260)

    def _init_layout(self) -> None:
        root = QtWidgets.QVBoxLayout(self)
        root.setContentsMargins(14, 14, 14, 14)
        root.setSpacing(10)

        form = QtWidgets.QFormLayout()
        form.setLabelAlignment(
            QtCore.Qt.AlignmentFlag.AlignLeft | QtCore.Qt.AlignmentFlag.AlignVCenter
        )
        form.setHorizontalSpacing(12)
        form.setVerticalSpacing(10)
        self._form = form

        self.schedule_type_combo = QtWidgets.QComboBox(self)
        for label, schedule_type in _SCHEDULE_TYPE_LABELS:
            self.schedule_type_combo.addItem(label, schedule_type.value)
        self.schedule_type_combo.currentIndexChanged.connect(
            self._on_schedule_type_changed
        )
        form.addRow("Schedule Type", self.schedule_type_combo)

        self.minutes_spin = QtWidgets.QSpinBox(self)
        self.minutes_spin.setRange(1, 24 * 60)
        form.addRow("Every N minutes", self.minutes_spin)

        self.hours_spin = QtWidgets.QSpinBox(self)
        self.hours_spin.setRange(1, 24 * 7)
        form.addRow("Every N hours", self.hours_spin)

        self.time_edit = QtWidgets.QTimeEdit(self)
        self.time_edit.setDisplayFormat("HH:mm")
        form.addRow("Time of day", self.time_edit)

        self.weekday_combo = QtWidgets.QComboBox(self)
        for index, name in enumerate(_WEEKDAYS):
            self.weekday_combo.addItem(name, index)
        form.addRow("Day of week", self.weekday_combo)

        self.day_of_month_spin = QtWidgets.QSpinBox(self)
        self.day_of_month_spin.setRange(1, 31)
        form.addRow("Day of month", self.day_of_month_spin)

        self.cron_edit = QtWidgets.QLineEdit(self)
        self.cron_edit.setPlaceholderText("e.g. 0 */2 * * *")
        form.addRow("Cron expression", self.cron_edit)

        root.addLayout(form)

        self.error_label = QtWidgets.QLabel(self)
        self.error_label.setObjectName("scheduler_dialog_error_label")
        self.error_label.setStyleSheet("color: #c62828;")
        self.error_label.setWordWrap(True)
        root.addWidget(self.error_label)
        root.addStretch(1)

        buttons = QtWidgets.QDialogButtonBox(
            QtWidgets.QDialogButtonBox.StandardButton.Cancel,
            parent=self,
        )
        self.enable_button = buttons.addButton(
            "Enable", QtWidgets.QDialogButtonBox.ButtonRole.AcceptRole
        )
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        root.addWidget(buttons)

    def _on_schedule_type_changed(self, _index: int) -> None:
        self.error_label.hide()
        self._sync_field_visibility()

    def _sync_field_visibility(self) -> None:
        schedule_type = self.selected_schedule_type()
        timed = schedule_type in {
            ScheduleType.DAILY,
            ScheduleType.WEEKLY,
            ScheduleType.MONTHLY,
        }
        self._form.setRowVisible(
            self.minutes_spin, schedule_type is ScheduleType.EVERY_N_MINUTES
        )
        self._form.setRowVisible(
            self.hours_spin, schedule_type is ScheduleType.EVERY_N_HOURS
        )
        self._form.setRowVisible(self.time_edit, timed)
        self._form.setRowVisible(
            self.weekday_combo, schedule_type is ScheduleType.WEEKLY
        )
        self._form.setRowVisible(
            self.day_of_month_spin, schedule_type is ScheduleType.MONTHLY
        )
        self._form.setRowVisible(self.cron_edit, schedule_type is ScheduleType.CRON)


__all__ = ["SchedulerDialog"]
