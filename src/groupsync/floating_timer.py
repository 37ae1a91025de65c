"""Frameless topmost window showing the next auto-sync countdown."""

from __future__ import annotations

from dataclasses import dataclass

from PySide6 import QtCore, QtGui, QtWidgets

from .engine import ScheduleEngine
from .models import ConsoleSettings, Scope
from .precedence import ActiveSchedule, PrecedenceView
from .request_runner import LivenessToken
from .scheduler_toggle import format_countdown
from .ticker import TickLease

_PULSE_THRESHOLD_SECONDS = 10
_SCREEN_MARGIN_PX = 16


@dataclass(frozen=True, slots=True)
class FloatingTimerSnapshot:
    """Read-only display state for testing/inspection."""

    displayed: bool
    label_text: str
    time_text: str
    seconds_remaining: int | None
    scope_key: str | None
    pulse_active: bool


class FloatingTimerWindow(QtWidgets.QWidget):
    """
    Follows the soonest enabled schedule across every scope.

    The window hides itself while no schedule has a known countdown and
    reappears as soon as one does, as long as ``activate()`` was called.
    """

    position_changed = QtCore.Signal(int, int)

    def __init__(
        self,
        *,
        engine: ScheduleEngine,
        settings: ConsoleSettings,
        parent: QtWidgets.QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._engine = engine
        self._settings = settings
        self._owner = LivenessToken("floating-timer")
        self._lease: TickLease | None = None
        self._active: ActiveSchedule | None = None
        self._requested = False
        self._displayed = False
        self._pulse: bool | None = None
        self._disposed = False
        self._drag_anchor_global: QtCore.QPoint | None = None
        self._drag_anchor_window: QtCore.QPoint | None = None

        self._init_window()
        self._init_layout()
        self._set_pulse_state(False)

        self._engine.resolver.subscribe(self._on_view_changed)
        self._on_view_changed(self._engine.view)

    @property
    def is_requested(self) -> bool:
        return self._requested

    @property
    def tracked_scope(self) -> Scope | None:
        return None if self._lease is None else self._lease.scope

    def activate(self) -> None:
        """Show whenever a schedule is active and pull a fresh snapshot."""
        if self._disposed:
            return
        self._requested = True
        self._engine.refresh_all(owner=self._owner)
        self._sync_visibility()

    def deactivate(self) -> None:
        self._requested = False
        self._sync_visibility()

    def snapshot(self) -> FloatingTimerSnapshot:
        active = self._active
        return FloatingTimerSnapshot(
            displayed=self._displayed,
            label_text=self._label.text(),
            time_text=self._time_label.text(),
            seconds_remaining=None if active is None else active.seconds_remaining,
            scope_key=None if active is None else active.scope.key,
            pulse_active=bool(self._pulse),
        )

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._owner.cancel()
        self._engine.resolver.unsubscribe(self._on_view_changed)
        self._release_lease()
        self._requested = False
        self._sync_visibility()

    def moveEvent(self, event: QtGui.QMoveEvent) -> None:
        self._sync_settings_position()
        super().moveEvent(event)

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:
        self.dispose()
        super().closeEvent(event)

    def mousePressEvent(self, event: QtGui.QMouseEvent) -> None:
        if event.button() == QtCore.Qt.MouseButton.LeftButton:
            self._drag_anchor_global = event.globalPosition().toPoint()
            self._drag_anchor_window = self.frameGeometry().topLeft()
            event.accept()
            return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event: QtGui.QMouseEvent) -> None:
        if (
            self._drag_anchor_global is not None
            and self._drag_anchor_window is not None
            and event.buttons() & QtCore.Qt.MouseButton.LeftButton
        ):
            delta = event.globalPosition().toPoint() - self._drag_anchor_global
            self.move(self._drag_anchor_window + delta)
            event.accept()
            return
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QtGui.QMouseEvent) -> None:
        if event.button() == QtCore.Qt.MouseButton.LeftButton:
            self._drag_anchor_global = None
            self._drag_anchor_window = None
            event.accept()
            return
        super().mouseReleaseEvent(event)

    def _init_window(self) -> None:
        flags = (
            QtCore.Qt.WindowType.Tool
            | QtCore.Qt.WindowType.FramelessWindowHint
            | QtCore.Qt.WindowType.WindowStaysOnTopHint
        )
        self.setWindowFlags(flags)
        self.setAttribute(QtCore.Qt.WidgetAttribute.WA_TranslucentBackground, True)
        self.setAttribute(QtCore.Qt.WidgetAttribute.WA_ShowWithoutActivating, True)
        self.setAutoFillBackground(False)
        self.setWindowTitle("GroupSync Timer")
        self.move(self._resolve_initial_position())

    def _resolve_initial_position(self) -> QtCore.QPoint:
        requested = QtCore.QPoint(
            int(self._settings.floating_timer_x),
            int(self._settings.floating_timer_y),
        )
        screens = QtGui.QGuiApplication.screens()
        if not screens:
            return requested
        if any(screen.availableGeometry().contains(requested) for screen in screens):
            return requested

        primary = QtGui.QGuiApplication.primaryScreen() or screens[0]
        safe_geometry = primary.availableGeometry()
        safe_position = QtCore.QPoint(
            int(safe_geometry.right() - 220),
            int(safe_geometry.bottom() - 90),
        )
        if not safe_geometry.contains(safe_position):
            safe_position = QtCore.QPoint(
                int(safe_geometry.left() + _SCREEN_MARGIN_PX),
                int(safe_geometry.top() + _SCREEN_MARGIN_PX),
            )
        self._settings.floating_timer_x = int(safe_position.x())
        self._settings.floating_timer_y = int(safe_position.y())
        return safe_position

    def _init_layout(self) -> None:
        self.setStyleSheet("""
            QFrame#floating_timer_frame {
                background: rgba(20, 20, 20, 200);
                border-radius: 10px;
                border: 1px solid rgba(255, 255, 255, 40);
            }
            QFrame#floating_timer_frame[pulse="true"] {
                background: rgba(170, 18, 18, 190);
                border: 1px solid rgba(255, 118, 118, 200);
            }
            QLabel#floating_timer_label {
                color: rgba(255, 255, 255, 190);
                font-size: 11px;
                font-weight: 600;
            }
            QLabel#floating_timer_time_label {
                color: white;
                font-family: monospace;
                font-size: 22px;
                font-weight: 700;
            }
            """)

        root_layout = QtWidgets.QVBoxLayout(self)
        root_layout.setContentsMargins(3, 3, 3, 3)

        self._frame = QtWidgets.QFrame(self)
        self._frame.setObjectName("floating_timer_frame")
        frame_layout = QtWidgets.QVBoxLayout(self._frame)
        frame_layout.setContentsMargins(12, 8, 12, 8)
        frame_layout.setSpacing(2)

        self._label = QtWidgets.QLabel("", self._frame)
        self._label.setObjectName("floating_timer_label")
        self._label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        frame_layout.addWidget(self._label)

        self._time_label = QtWidgets.QLabel(format_countdown(None), self._frame)
        self._time_label.setObjectName("floating_timer_time_label")
        self._time_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        frame_layout.addWidget(self._time_label)

        root_layout.addWidget(self._frame)

    def _on_view_changed(self, view: PrecedenceView) -> None:
        if self._disposed:
            return
        active = view.active
        self._active = active
        self._follow_scope(None if active is None else active.scope)

        if active is None:
            self._label.clear()
            self._time_label.setText(format_countdown(None))
            self._set_pulse_state(False)
        else:
            self._label.setText(active.label)
            self._time_label.setText(format_countdown(active.seconds_remaining))
            self._set_pulse_state(
                active.seconds_remaining <= _PULSE_THRESHOLD_SECONDS
            )
        self._sync_visibility()

    def _follow_scope(self, scope: Scope | None) -> None:
        if self._lease is not None and self._lease.scope == scope:
            return
        self._release_lease()
        if scope is not None:
            self._lease = self._engine.acquire_ticks(scope)

    def _release_lease(self) -> None:
        lease, self._lease = self._lease, None
        if lease is not None:
            lease.release()

    def _sync_visibility(self) -> None:
        should_display = self._requested and self._active is not None
        if should_display == self._displayed:
            return
        self._displayed = should_display
        if should_display:
            self.show()
            self.adjustSize()
        else:
            self.hide()

    def _set_pulse_state(self, pulse: bool) -> None:
        if self._pulse is pulse:
            return
        self._pulse = pulse
        self._frame.setProperty("pulse", pulse)
        style = self._frame.style()
        if style is not None:
            style.unpolish(self._frame)
            style.polish(self._frame)
        self._frame.update()

    def _sync_settings_position(self) -> None:
        position = self.pos()
        x = int(position.x())
        y = int(position.y())
        self._settings.floating_timer_x = x
        self._settings.floating_timer_y = y
        self.position_changed.emit(x, y)


__all__ = ["FloatingTimerSnapshot", "FloatingTimerWindow"]
