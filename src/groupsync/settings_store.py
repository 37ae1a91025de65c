"""JSON persistence for GroupSync console settings."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from tempfile import NamedTemporaryFile

from .models import ConsoleSettings

logger = logging.getLogger(__name__)

APP_NAME = "GroupSync"
_API_URL_ENV_VAR = "GROUPSYNC_API_URL"
_API_TOKEN_ENV_VAR = "GROUPSYNC_API_TOKEN"
_TIMEZONE_ENV_VAR = "GROUPSYNC_TIMEZONE"
_LOG_LEVEL_ENV_VAR = "GROUPSYNC_LOG_LEVEL"

# Fields the window owns; everything else on disk is only changed by hand.
UI_STATE_FIELDS = ("show_floating_timer", "floating_timer_x", "floating_timer_y")


def default_settings_dir(app_name: str = APP_NAME) -> Path:
    """Return the default settings directory."""
    if os.name == "nt":
        local_app_data = os.environ.get("LOCALAPPDATA")
        if local_app_data:
            return Path(local_app_data) / app_name
        return Path.home() / "AppData" / "Local" / app_name
    return Path.home() / ".config" / app_name


def default_settings_path(
    app_name: str = APP_NAME, file_name: str = "settings.json"
) -> Path:
    """Return the full default settings file path."""
    return default_settings_dir(app_name=app_name) / file_name


def apply_env_overrides(
    settings: ConsoleSettings, environ: Mapping[str, str] | None = None
) -> ConsoleSettings:
    """Return a copy of ``settings`` with ``GROUPSYNC_*`` variables applied."""
    env = os.environ if environ is None else environ
    overrides: dict[str, str] = {}

    api_url = (env.get(_API_URL_ENV_VAR) or "").strip()
    if api_url:
        overrides["api_base_url"] = api_url
    api_token = (env.get(_API_TOKEN_ENV_VAR) or "").strip()
    if api_token:
        overrides["api_token"] = api_token
    timezone = (env.get(_TIMEZONE_ENV_VAR) or "").strip()
    if timezone:
        overrides["timezone"] = timezone
    log_level = (env.get(_LOG_LEVEL_ENV_VAR) or "").strip()
    if log_level:
        overrides["log_level"] = log_level

    if not overrides:
        return settings
    updated = replace(settings, extra=dict(settings.extra), **overrides)
    updated.ensure_defaults()
    return updated


def merge_ui_state(base: ConsoleSettings, current: ConsoleSettings) -> ConsoleSettings:
    """
    Return a copy of ``base`` carrying the window-owned fields of ``current``.

    ``current`` may hold environment overrides; they never reach the copy.
    """
    ui_state = {name: getattr(current, name) for name in UI_STATE_FIELDS}
    return replace(base, extra=dict(base.extra), **ui_state)


class SettingsStore:
    """Load/save settings with graceful fallback behavior."""

    def __init__(
        self, file_path: str | Path | None = None, *, app_name: str = APP_NAME
    ) -> None:
        self.file_path = (
            Path(file_path)
            if file_path is not None
            else default_settings_path(app_name=app_name)
        )

    def load(self) -> ConsoleSettings:
        """Load settings from disk or return defaults on failure."""
        try:
            raw_content = self.file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ConsoleSettings.default()
        except OSError as exc:
            logger.warning("Could not read %s: %s", self.file_path, exc)
            return ConsoleSettings.default()

        try:
            payload = json.loads(raw_content)
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring corrupt settings file %s: %s", self.file_path, exc)
            return ConsoleSettings.default()

        if not isinstance(payload, dict):
            return ConsoleSettings.default()

        try:
            return ConsoleSettings.from_dict(payload)
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid settings in %s: %s", self.file_path, exc)
            return ConsoleSettings.default()

    def save(self, settings: ConsoleSettings) -> None:
        """Persist settings atomically to reduce corruption risk."""
        settings.ensure_defaults()
        payload = settings.to_dict()
        serialized = json.dumps(payload, indent=2, sort_keys=True)

        self.file_path.parent.mkdir(parents=True, exist_ok=True)

        temp_file_path: Path | None = None
        try:
            with NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self.file_path.parent,
                delete=False,
            ) as temp_file:
                temp_file_path = Path(temp_file.name)
                temp_file.write(serialized)
                temp_file.write("\n")

            os.replace(temp_file_path, self.file_path)
        finally:
            if temp_file_path is not None and temp_file_path.exists():
                temp_file_path.unlink(missing_ok=True)


def load_settings(
    file_path: str | Path | None = None, *, app_name: str = APP_NAME
) -> ConsoleSettings:
    """Load settings and apply environment overrides in one step."""
    return apply_env_overrides(
        SettingsStore(file_path=file_path, app_name=app_name).load()
    )


def save_settings(
    settings: ConsoleSettings,
    file_path: str | Path | None = None,
    *,
    app_name: str = APP_NAME,
) -> None:
    """Convenience helper for one-shot settings save."""
    SettingsStore(file_path=file_path, app_name=app_name).save(settings)


__all__ = [
    "APP_NAME",
    "SettingsStore",
    "UI_STATE_FIELDS",
    "apply_env_overrides",
    "default_settings_dir",
    "default_settings_path",
    "load_settings",
    "merge_ui_state",
    "save_settings",
]
