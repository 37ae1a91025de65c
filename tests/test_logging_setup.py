import logging
import logging.handlers

import pytest

from groupsync.logging_setup import configure_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger("groupsync")
    original_level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if (handler.get_name() or "").startswith("groupsync-"):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(original_level)


def _installed(logger):
    return sorted(
        handler.get_name()
        for handler in logger.handlers
        if (handler.get_name() or "").startswith("groupsync-")
    )


def test_configure_logging_writes_rotating_file(package_logger, tmp_path):
    log_path = tmp_path / "logs" / "groupsync.log"

    configure_logging("debug", log_path, console=False)
    logging.getLogger("groupsync.polling").debug("snapshot applied")
    for handler in package_logger.handlers:
        handler.flush()

    assert package_logger.level == logging.DEBUG
    assert _installed(package_logger) == ["groupsync-file"]
    file_handler = package_logger.handlers[-1]
    assert isinstance(file_handler, logging.handlers.RotatingFileHandler)
    assert file_handler.backupCount == 3
    assert "groupsync.polling - DEBUG - snapshot applied" in log_path.read_text(
        encoding="utf-8"
    )


def test_reconfiguring_replaces_previous_handlers(package_logger, tmp_path):
    configure_logging("INFO", tmp_path / "a.log")
    configure_logging("WARNING", tmp_path / "b.log")

    assert _installed(package_logger) == ["groupsync-console", "groupsync-file"]
    assert package_logger.level == logging.WARNING


def test_unknown_level_falls_back_to_info(package_logger, tmp_path):
    configure_logging("chatty", tmp_path / "c.log", console=False)

    assert package_logger.level == logging.INFO


def test_unusable_log_directory_keeps_console_logging(package_logger, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    configure_logging("INFO", blocker / "logs" / "groupsync.log")

    assert _installed(package_logger) == ["groupsync-console"]
