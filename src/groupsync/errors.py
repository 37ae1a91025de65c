"""Exception types raised by the schedule engine and its API client."""

from __future__ import annotations


class ScheduleEngineError(Exception):
    """Base class for schedule engine failures."""


class NetworkFailure(ScheduleEngineError):
    """A request to the scheduling service failed or returned garbage."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PresetValidationError(ScheduleEngineError, ValueError):
    """A schedule preset was rejected before any network call."""


__all__ = [
    "NetworkFailure",
    "PresetValidationError",
    "ScheduleEngineError",
]
