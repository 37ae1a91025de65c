"""GroupSync package exports."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "ScheduleEngine": ("engine", "ScheduleEngine"),
    "EngineRuntimeController": ("engine_runtime", "EngineRuntimeController"),
    "QtIntervalTimer": ("engine_runtime", "QtIntervalTimer"),
    "QtRequestRunner": ("engine_runtime", "QtRequestRunner"),
    "NetworkFailure": ("errors", "NetworkFailure"),
    "PresetValidationError": ("errors", "PresetValidationError"),
    "ScheduleEngineError": ("errors", "ScheduleEngineError"),
    "FloatingTimerSnapshot": ("floating_timer", "FloatingTimerSnapshot"),
    "FloatingTimerWindow": ("floating_timer", "FloatingTimerWindow"),
    "ALL_SCOPES_KEY": ("generations", "ALL_SCOPES_KEY"),
    "RequestGenerations": ("generations", "RequestGenerations"),
    "configure_logging": ("logging_setup", "configure_logging"),
    "default_log_path": ("logging_setup", "default_log_path"),
    "MainWindow": ("main_window", "MainWindow"),
    "ConsoleSettings": ("models", "ConsoleSettings"),
    "CountdownEntry": ("models", "CountdownEntry"),
    "EntryState": ("models", "EntryState"),
    "SchedulePreset": ("models", "SchedulePreset"),
    "ScheduleType": ("models", "ScheduleType"),
    "Scope": ("models", "Scope"),
    "ScopeKind": ("models", "ScopeKind"),
    "OptimisticMutator": ("optimistic", "OptimisticMutator"),
    "PollingCoordinator": ("polling", "PollingCoordinator"),
    "ActiveSchedule": ("precedence", "ActiveSchedule"),
    "PrecedenceResolver": ("precedence", "PrecedenceResolver"),
    "PrecedenceView": ("precedence", "PrecedenceView"),
    "resolve_precedence": ("precedence", "resolve_precedence"),
    "InlineRequestRunner": ("request_runner", "InlineRequestRunner"),
    "LivenessToken": ("request_runner", "LivenessToken"),
    "Operation": ("request_runner", "Operation"),
    "RequestOutcome": ("request_runner", "RequestOutcome"),
    "RequestRunner": ("request_runner", "RequestRunner"),
    "EntitySummary": ("schedule_api", "EntitySummary"),
    "ScheduleApi": ("schedule_api", "ScheduleApi"),
    "ScheduleApiClient": ("schedule_api", "ScheduleApiClient"),
    "ScheduleStore": ("schedule_store", "ScheduleStore"),
    "StoreChange": ("schedule_store", "StoreChange"),
    "StoreChangeType": ("schedule_store", "StoreChangeType"),
    "SchedulerDialog": ("scheduler_dialog", "SchedulerDialog"),
    "SchedulerToggle": ("scheduler_toggle", "SchedulerToggle"),
    "format_countdown": ("scheduler_toggle", "format_countdown"),
    "SettingsStore": ("settings_store", "SettingsStore"),
    "apply_env_overrides": ("settings_store", "apply_env_overrides"),
    "default_settings_dir": ("settings_store", "default_settings_dir"),
    "default_settings_path": ("settings_store", "default_settings_path"),
    "load_settings": ("settings_store", "load_settings"),
    "save_settings": ("settings_store", "save_settings"),
    "CountdownTicker": ("ticker", "CountdownTicker"),
    "IntervalTimer": ("ticker", "IntervalTimer"),
    "TickLease": ("ticker", "TickLease"),
}

__all__ = [
    *_LAZY_EXPORTS,
    "run",
]


def __getattr__(name: str) -> Any:
    try:
        module_name, attr_name = _LAZY_EXPORTS[name]
    except KeyError as exc:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}") from exc

    module = import_module(f".{module_name}", __name__)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted([*globals(), *__all__])


def run() -> None:
    """Launch the desktop UI."""
    from .main import run as _run

    _run()
