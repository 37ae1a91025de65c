"""Application entrypoint for the GroupSync auto-sync console."""

from __future__ import annotations

import logging
import os
import sys

from PySide6 import QtCore, QtWidgets

from .logging_setup import configure_logging
from .main_window import MainWindow
from .settings_store import SettingsStore, apply_env_overrides

logger = logging.getLogger(__name__)

_AUTO_EXIT_MS_ENV_VAR = "GROUPSYNC_AUTO_EXIT_MS"


def _get_auto_exit_delay_ms() -> int | None:
    raw_value = os.environ.get(_AUTO_EXIT_MS_ENV_VAR)
    if raw_value is None:
        return None

    try:
        delay_ms = int(raw_value)
    except ValueError:
        return None

    if delay_ms <= 0:
        return None

    return delay_ms


def build_window(settings_store: SettingsStore | None = None) -> MainWindow:
    """Load settings, configure logging, and create the application window."""
    store = settings_store or SettingsStore()
    settings = apply_env_overrides(store.load())
    configure_logging(settings.log_level)
    logger.info("Using scheduling service at %s", settings.api_base_url)
    return MainWindow(settings_store=store, settings=settings)


def _request_auto_exit(
    app: QtWidgets.QApplication,
    window: MainWindow,
) -> None:
    """Terminate the app reliably for automation and smoke tests."""
    window.exit_to_desktop()
    QtCore.QTimer.singleShot(0, app.quit)


def run() -> None:
    """Launch the desktop UI."""
    app = QtWidgets.QApplication.instance()
    owns_app = app is None
    if app is None:
        app = QtWidgets.QApplication(sys.argv)

    window = build_window()
    window.show()

    if owns_app:
        auto_exit_delay_ms = _get_auto_exit_delay_ms()
        if auto_exit_delay_ms is not None:
            QtCore.QTimer.singleShot(
                auto_exit_delay_ms,
                lambda: _request_auto_exit(app, window),
            )
        app.exec()


if __name__ == "__main__":
    run()
