"""Qt-side runtime: threaded requests, QTimer intervals, engine lifecycle."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from PySide6 import QtCore

from .engine import ScheduleEngine
from .models import ConsoleSettings
from .request_runner import Operation, RequestOutcome, RequestRunner, run_request
from .schedule_api import ScheduleApi, ScheduleApiClient
from .ticker import IntervalTimer, TimerFactory

logger = logging.getLogger(__name__)

_DEFAULT_MAX_WORKERS = 4


class QtRequestRunner(QtCore.QObject):
    """
    Runs requests on a thread pool and delivers outcomes on the GUI thread.

    Outcomes travel through a queued signal, so they are applied one at a
    time on the thread that owns this object, in completion order.
    """

    _outcome_ready = QtCore.Signal(object, object)

    def __init__(
        self,
        *,
        max_workers: int = _DEFAULT_MAX_WORKERS,
        parent: QtCore.QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)),
            thread_name_prefix="groupsync-request",
        )
        self._closed = False
        self._outcome_ready.connect(
            self._deliver_outcome,
            QtCore.Qt.ConnectionType.QueuedConnection,
        )

    @property
    def is_closed(self) -> bool:
        return self._closed

    def submit(
        self,
        request: Callable[[], Any],
        on_done: Callable[[RequestOutcome], None],
    ) -> None:
        if self._closed:
            return
        future = self._executor.submit(run_request, request)
        future.add_done_callback(
            lambda finished: self._forward(on_done, finished)
        )

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _forward(
        self,
        on_done: Callable[[RequestOutcome], None],
        future: Future,
    ) -> None:
        if self._closed or future.cancelled():
            return
        self._outcome_ready.emit(on_done, future.result())

    @QtCore.Slot(object, object)
    def _deliver_outcome(self, on_done: object, outcome: object) -> None:
        if self._closed:
            return
        if not callable(on_done) or not isinstance(outcome, RequestOutcome):
            return
        on_done(outcome)


class QtIntervalTimer:
    """``IntervalTimer`` backed by a repeating ``QTimer``."""

    def __init__(
        self,
        interval_ms: int,
        callback: Callable[[], None],
        *,
        parent: QtCore.QObject | None = None,
    ) -> None:
        self._timer = QtCore.QTimer(parent)
        self._timer.setInterval(max(1, int(interval_ms)))
        self._timer.setTimerType(QtCore.Qt.TimerType.PreciseTimer)
        self._timer.timeout.connect(callback)

    @property
    def is_active(self) -> bool:
        return self._timer.isActive()

    @property
    def interval_ms(self) -> int:
        return self._timer.interval()

    def start(self) -> None:
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()


def qt_timer_factory(parent: QtCore.QObject | None = None) -> TimerFactory:
    """Build a ``TimerFactory`` whose timers are parented to ``parent``."""

    def _factory(interval_ms: int, callback: Callable[[], None]) -> IntervalTimer:
        return QtIntervalTimer(interval_ms, callback, parent=parent)

    return _factory


def _close_api(api: Any) -> None:
    close_fn = getattr(api, "close", None)
    if callable(close_fn):
        close_fn()


class EngineRuntimeController(QtCore.QObject):
    """Creates the one ``ScheduleEngine`` for the process and tears it down."""

    error_occurred = QtCore.Signal(str)

    def __init__(
        self,
        *,
        settings: ConsoleSettings,
        api_factory: Callable[[ConsoleSettings], ScheduleApi] | None = None,
        runner_factory: Callable[[QtCore.QObject], RequestRunner] | None = None,
        timer_factory: TimerFactory | None = None,
        parent: QtCore.QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings = settings
        self._api_factory = api_factory or ScheduleApiClient.from_settings
        self._runner_factory = runner_factory or (
            lambda owner: QtRequestRunner(parent=owner)
        )
        self._timer_factory = timer_factory or qt_timer_factory(self)
        self._engine: ScheduleEngine | None = None
        self._api: ScheduleApi | None = None

    @property
    def engine(self) -> ScheduleEngine | None:
        return self._engine

    @property
    def api(self) -> ScheduleApi | None:
        return self._api

    @property
    def is_running(self) -> bool:
        return self._engine is not None and self._engine.is_running

    def start(self) -> ScheduleEngine:
        if self._engine is not None:
            return self._engine

        api = self._api_factory(self._settings)
        try:
            engine = ScheduleEngine(
                api=api,
                runner=self._runner_factory(self),
                timer_factory=self._timer_factory,
                settings=self._settings,
            )
            initial_poll = engine.start()
        except Exception:
            _close_api(api)
            raise

        self._api = api
        self._engine = engine
        initial_poll.add_done_callback(self._report_failure)
        return engine

    def stop(self) -> None:
        engine, self._engine = self._engine, None
        api, self._api = self._api, None
        pending_error: Exception | None = None
        try:
            if engine is not None:
                engine.shutdown()
        except Exception as exc:
            pending_error = exc
        finally:
            if api is not None:
                _close_api(api)

        if pending_error is not None:
            raise pending_error

    def report(self, operation: Operation) -> None:
        """Forward a rejected operation to ``error_occurred``."""
        operation.add_done_callback(self._report_failure)

    def _report_failure(self, operation: Operation) -> None:
        if operation.error is None:
            return
        message = str(operation.error).strip()
        if message:
            self.error_occurred.emit(message)


__all__ = [
    "EngineRuntimeController",
    "QtIntervalTimer",
    "QtRequestRunner",
    "qt_timer_factory",
]
