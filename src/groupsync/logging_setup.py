"""Log file rotation and console output for the GroupSync console."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from .models import DEFAULT_LOG_LEVEL
from .settings_store import default_settings_dir

_PACKAGE_LOGGER_NAME = "groupsync"
_HANDLER_NAME_PREFIX = "groupsync-"
_LOG_FILE_NAME = "groupsync.log"
_MAX_LOG_BYTES = 1024 * 1024
_BACKUP_COUNT = 3


def default_log_path() -> Path:
    """Return the rotating log file path next to the settings file."""
    return default_settings_dir() / "logs" / _LOG_FILE_NAME


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    name = (level or DEFAULT_LOG_LEVEL).strip().upper()
    resolved = logging.getLevelName(name)
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def configure_logging(
    level: str | int | None = None,
    log_path: str | Path | None = None,
    *,
    console: bool = True,
) -> logging.Logger:
    """
    Attach a rotating file handler and a stderr handler to the package logger.

    Calling it again replaces the handlers it installed earlier instead of
    stacking duplicates. When the log directory cannot be created only the
    console handler is installed.
    """
    package_logger = logging.getLogger(_PACKAGE_LOGGER_NAME)
    resolved_level = _resolve_level(level)
    package_logger.setLevel(resolved_level)

    for handler in list(package_logger.handlers):
        if (handler.get_name() or "").startswith(_HANDLER_NAME_PREFIX):
            package_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    path = Path(log_path) if log_path is not None else default_log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=_MAX_LOG_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as exc:
        package_logger.warning("File logging disabled (%s): %s", path, exc)
    else:
        file_handler.set_name(f"{_HANDLER_NAME_PREFIX}file")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(resolved_level)
        package_logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.set_name(f"{_HANDLER_NAME_PREFIX}console")
        console_handler.setFormatter(formatter)
        console_handler.setLevel(resolved_level)
        package_logger.addHandler(console_handler)

    return package_logger


__all__ = ["configure_logging", "default_log_path"]
