"""Core domain models for GroupSync."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Mapping

from tzlocal import get_localzone_name

from .errors import PresetValidationError

GLOBAL_SCOPE_KEY = "global"
ENTITY_SCOPE_PREFIX = "entity:"

DEFAULT_API_BASE_URL = "http://localhost:8080/api"
DEFAULT_TIMEZONE = "UTC"
DEFAULT_POLL_INTERVAL_SECONDS = 15.0
DEFAULT_TOGGLE_REFRESH_TICKS = 20
DEFAULT_TICK_INTERVAL_MS = 1000
DEFAULT_LOG_LEVEL = "INFO"

_TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_LEGACY_ENTITY_SCOPES = {"entity", "parent"}
_TIMEZONE_ALIASES = {"Asia/Calcutta": "Asia/Kolkata"}


def _get_value(data: Mapping[str, Any], *keys: str, default: Any) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off"}:
            return False
    return default


def _as_str(value: Any, default: str) -> str:
    if isinstance(value, str):
        return value
    return default


def _as_optional_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _as_seconds(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        seconds = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return max(0, seconds)


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    text = value.astimezone(timezone.utc).isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def detect_local_timezone() -> str:
    """IANA name of the machine's zone, or UTC when it cannot be determined."""
    try:
        name = get_localzone_name()
    except (LookupError, ValueError, OSError):
        return DEFAULT_TIMEZONE
    return (name or "").strip() or DEFAULT_TIMEZONE


def normalize_timezone_name(name: str | None) -> str:
    """Return a usable IANA zone name, mapping legacy aliases.

    A blank name means the machine's local zone.
    """
    candidate = (name or "").strip() or detect_local_timezone()
    return _TIMEZONE_ALIASES.get(candidate, candidate)


class ScopeKind(StrEnum):
    """Whether a schedule applies to everything or to one entity."""

    GLOBAL = "global"
    ENTITY = "entity"


@dataclass(frozen=True, slots=True)
class Scope:
    """Identifies the global schedule or one per-entity schedule."""

    kind: ScopeKind
    entity_id: str | None = None

    def __post_init__(self) -> None:
        if self.kind is ScopeKind.GLOBAL and self.entity_id is not None:
            raise ValueError("Global scope cannot carry an entity id.")
        if self.kind is ScopeKind.ENTITY and not self.entity_id:
            raise ValueError("Entity scope requires a non-empty entity id.")

    @classmethod
    def global_(cls) -> "Scope":
        return cls(ScopeKind.GLOBAL)

    @classmethod
    def entity(cls, entity_id: str) -> "Scope":
        return cls(ScopeKind.ENTITY, str(entity_id))

    @classmethod
    def from_key(cls, key: str) -> "Scope":
        if key == GLOBAL_SCOPE_KEY:
            return cls.global_()
        if key.startswith(ENTITY_SCOPE_PREFIX):
            return cls.entity(key[len(ENTITY_SCOPE_PREFIX) :])
        raise ValueError(f"Unrecognized scope key: {key!r}")

    @property
    def is_global(self) -> bool:
        return self.kind is ScopeKind.GLOBAL

    @property
    def key(self) -> str:
        if self.kind is ScopeKind.GLOBAL:
            return GLOBAL_SCOPE_KEY
        return f"{ENTITY_SCOPE_PREFIX}{self.entity_id}"

    def sort_key(self) -> tuple[int, str]:
        """Deterministic ordering: global first, then entities by id."""
        return (0, "") if self.is_global else (1, str(self.entity_id))

    def to_wire_scope(self) -> dict[str, Any]:
        if self.is_global:
            return {"scope": ScopeKind.GLOBAL.value}
        return {"scope": ScopeKind.ENTITY.value, "entityId": self.entity_id}

    def to_query_params(self) -> dict[str, str]:
        if self.is_global:
            return {"scope": ScopeKind.GLOBAL.value}
        return {"scope": ScopeKind.ENTITY.value, "entityId": str(self.entity_id)}

    def __str__(self) -> str:
        return self.key


class EntryState(StrEnum):
    """Two-phase state of a countdown entry."""

    PROVISIONAL = "provisional"
    CONFIRMED = "confirmed"


@dataclass(frozen=True, slots=True)
class CountdownEntry:
    """
    One schedule's countdown as held by the store.

    ``PROVISIONAL`` entries come from an optimistic enable and never carry a
    number; ``CONFIRMED`` entries come from the server. A confirmed entry may
    still lack ``seconds_remaining`` when the server has not computed one.
    """

    scope: Scope
    enabled: bool
    seconds_remaining: int | None
    next_run_at: datetime | None = None
    state: EntryState = EntryState.CONFIRMED

    def __post_init__(self) -> None:
        if self.state is EntryState.PROVISIONAL:
            if self.seconds_remaining is not None:
                raise ValueError("Provisional entries cannot carry seconds_remaining.")
            if not self.enabled:
                raise ValueError("Provisional entries are always enabled.")
        if self.seconds_remaining is not None and self.seconds_remaining < 0:
            raise ValueError("seconds_remaining must be >= 0")

    @classmethod
    def provisional(cls, scope: Scope) -> "CountdownEntry":
        return cls(
            scope=scope,
            enabled=True,
            seconds_remaining=None,
            next_run_at=None,
            state=EntryState.PROVISIONAL,
        )

    @classmethod
    def confirmed(
        cls,
        scope: Scope,
        seconds_remaining: int | None,
        *,
        enabled: bool = True,
        next_run_at: datetime | None = None,
    ) -> "CountdownEntry":
        return cls(
            scope=scope,
            enabled=enabled,
            seconds_remaining=seconds_remaining,
            next_run_at=next_run_at,
            state=EntryState.CONFIRMED,
        )

    @property
    def key(self) -> str:
        return self.scope.key

    @property
    def is_provisional(self) -> bool:
        return self.state is EntryState.PROVISIONAL

    @property
    def has_countdown(self) -> bool:
        """True when the entry can take part in soonest-wins and ticking."""
        return (
            self.enabled
            and self.state is EntryState.CONFIRMED
            and self.seconds_remaining is not None
        )

    def with_seconds(self, seconds_remaining: int) -> "CountdownEntry":
        return replace(self, seconds_remaining=max(0, int(seconds_remaining)))

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "scope": self.scope.kind.value,
            "enabled": self.enabled,
            "seconds": self.seconds_remaining,
            "nextRunAt": _format_timestamp(self.next_run_at),
        }
        if not self.scope.is_global:
            payload["entityId"] = self.scope.entity_id
        return payload

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "CountdownEntry":
        if not isinstance(data, Mapping):
            raise ValueError("Countdown payload must be a mapping.")

        raw_scope = _as_str(_get_value(data, "scope", default=""), "").strip().lower()
        if raw_scope == ScopeKind.GLOBAL.value:
            scope = Scope.global_()
        elif raw_scope in _LEGACY_ENTITY_SCOPES:
            entity_id = _get_value(data, "entityId", "parentId", default=None)
            if entity_id is None or str(entity_id).strip() == "":
                raise ValueError("Entity countdown payload is missing entityId.")
            scope = Scope.entity(str(entity_id).strip())
        else:
            raise ValueError(f"Unrecognized countdown scope: {raw_scope!r}")

        return cls.confirmed(
            scope,
            _as_seconds(_get_value(data, "seconds", default=None)),
            enabled=_as_bool(_get_value(data, "enabled", default=False), False),
            next_run_at=_parse_timestamp(_get_value(data, "nextRunAt", default=None)),
        )


class ScheduleType(StrEnum):
    """Recurrence kinds understood by the scheduling service."""

    EVERY_N_MINUTES = "everyNMinutes"
    EVERY_N_HOURS = "everyNHours"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CRON = "cron"


_TIME_OF_DAY_TYPES = {ScheduleType.DAILY, ScheduleType.WEEKLY, ScheduleType.MONTHLY}


@dataclass(slots=True)
class SchedulePreset:
    """User-chosen recurrence submitted with an enable command."""

    schedule_type: ScheduleType | str = ScheduleType.EVERY_N_MINUTES
    minutes_interval: int | None = None
    hours_interval: int | None = None
    time_of_day: str | None = None
    day_of_week: int | None = None
    day_of_month: int | None = None
    cron: str | None = None

    def validate(self) -> "SchedulePreset":
        """Return ``self`` when valid, raise ``PresetValidationError`` otherwise."""
        try:
            schedule_type = ScheduleType(self.schedule_type)
        except ValueError:
            raise PresetValidationError(
                f"Unknown scheduleType: {self.schedule_type!r}"
            ) from None
        self.schedule_type = schedule_type

        if schedule_type is ScheduleType.EVERY_N_MINUTES:
            _require_positive(self.minutes_interval, "minutesInterval")
        elif schedule_type is ScheduleType.EVERY_N_HOURS:
            _require_positive(self.hours_interval, "hoursInterval")
        elif schedule_type is ScheduleType.CRON:
            if not (self.cron or "").strip():
                raise PresetValidationError("cron expression is required.")

        if schedule_type in _TIME_OF_DAY_TYPES:
            if not isinstance(self.time_of_day, str) or not _TIME_OF_DAY_PATTERN.match(
                self.time_of_day
            ):
                raise PresetValidationError("timeOfDay must be formatted as HH:mm.")
        if schedule_type is ScheduleType.WEEKLY:
            _require_range(self.day_of_week, 0, 6, "dayOfWeek")
        if schedule_type is ScheduleType.MONTHLY:
            _require_range(self.day_of_month, 1, 31, "dayOfMonth")
        return self

    def to_payload(self) -> dict[str, Any]:
        """Project the preset onto the fields its schedule type uses."""
        self.validate()
        schedule_type = ScheduleType(self.schedule_type)
        payload: dict[str, Any] = {"scheduleType": schedule_type.value}
        if schedule_type is ScheduleType.EVERY_N_MINUTES:
            payload["minutesInterval"] = int(self.minutes_interval or 0)
        elif schedule_type is ScheduleType.EVERY_N_HOURS:
            payload["hoursInterval"] = int(self.hours_interval or 0)
        elif schedule_type is ScheduleType.CRON:
            payload["cron"] = (self.cron or "").strip()

        if schedule_type in _TIME_OF_DAY_TYPES:
            payload["timeOfDay"] = self.time_of_day
        if schedule_type is ScheduleType.WEEKLY:
            payload["dayOfWeek"] = int(self.day_of_week or 0)
        if schedule_type is ScheduleType.MONTHLY:
            payload["dayOfMonth"] = int(self.day_of_month or 0)
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SchedulePreset":
        if not isinstance(data, Mapping):
            raise PresetValidationError("Preset payload must be a mapping.")

        def optional_int(*keys: str) -> int | None:
            value = _get_value(data, *keys, default=None)
            if value is None:
                return None
            return _as_int(value, -1)

        return cls(
            schedule_type=_as_str(
                _get_value(data, "scheduleType", "schedule_type", default=""), ""
            ),
            minutes_interval=optional_int("minutesInterval", "minutes_interval"),
            hours_interval=optional_int("hoursInterval", "hours_interval"),
            time_of_day=_as_optional_str(
                _get_value(data, "timeOfDay", "time_of_day", default=None)
            ),
            day_of_week=optional_int("dayOfWeek", "day_of_week"),
            day_of_month=optional_int("dayOfMonth", "day_of_month"),
            cron=_as_optional_str(_get_value(data, "cron", default=None)),
        )


def _require_positive(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise PresetValidationError(f"{name} must be an integer >= 1.")


def _require_range(value: Any, low: int, high: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise PresetValidationError(f"{name} must be between {low} and {high}.")


@dataclass(slots=True)
class ConsoleSettings:
    """Persisted console configuration."""

    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: str | None = None
    timezone: str | None = None
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    toggle_refresh_ticks: int = DEFAULT_TOGGLE_REFRESH_TICKS
    tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS
    request_timeout_seconds: float | None = None
    show_floating_timer: bool = True
    floating_timer_x: int = 0
    floating_timer_y: int = 0
    log_level: str = DEFAULT_LOG_LEVEL
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def default(cls) -> "ConsoleSettings":
        return cls()

    @property
    def poll_interval_ms(self) -> int:
        return max(1, int(round(self.poll_interval_seconds * 1000)))

    def ensure_defaults(self) -> None:
        """Clamp values that would make the engine misbehave."""
        self.api_base_url = self.api_base_url.strip() or DEFAULT_API_BASE_URL
        zone = _as_optional_str(self.timezone)
        self.timezone = None if zone is None else normalize_timezone_name(zone)
        if self.poll_interval_seconds <= 0:
            self.poll_interval_seconds = DEFAULT_POLL_INTERVAL_SECONDS
        if self.toggle_refresh_ticks < 1:
            self.toggle_refresh_ticks = DEFAULT_TOGGLE_REFRESH_TICKS
        if self.tick_interval_ms < 1:
            self.tick_interval_ms = DEFAULT_TICK_INTERVAL_MS
        if self.request_timeout_seconds is not None and self.request_timeout_seconds <= 0:
            self.request_timeout_seconds = None
        self.log_level = (self.log_level or DEFAULT_LOG_LEVEL).strip().upper()

    def to_dict(self) -> dict[str, Any]:
        payload = dict(self.extra)
        payload.update(
            {
                "api_base_url": self.api_base_url,
                "api_token": self.api_token,
                "timezone": self.timezone,
                "poll_interval_seconds": self.poll_interval_seconds,
                "toggle_refresh_ticks": self.toggle_refresh_ticks,
                "tick_interval_ms": self.tick_interval_ms,
                "request_timeout_seconds": self.request_timeout_seconds,
                "show_floating_timer": self.show_floating_timer,
                "floating_timer_x": self.floating_timer_x,
                "floating_timer_y": self.floating_timer_y,
                "log_level": self.log_level,
            }
        )
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConsoleSettings":
        if not isinstance(data, Mapping):
            raise TypeError("Settings payload must be a mapping.")

        known = {name for name in cls.__dataclass_fields__ if name != "extra"}
        timeout_raw = data.get("request_timeout_seconds")
        settings = cls(
            api_base_url=_as_str(
                data.get("api_base_url", DEFAULT_API_BASE_URL), DEFAULT_API_BASE_URL
            ),
            api_token=_as_optional_str(data.get("api_token")),
            timezone=_as_optional_str(data.get("timezone")),
            poll_interval_seconds=_as_float(
                data.get("poll_interval_seconds"), DEFAULT_POLL_INTERVAL_SECONDS
            ),
            toggle_refresh_ticks=_as_int(
                data.get("toggle_refresh_ticks"), DEFAULT_TOGGLE_REFRESH_TICKS
            ),
            tick_interval_ms=_as_int(
                data.get("tick_interval_ms"), DEFAULT_TICK_INTERVAL_MS
            ),
            request_timeout_seconds=(
                None if timeout_raw is None else _as_float(timeout_raw, 0.0)
            ),
            show_floating_timer=_as_bool(data.get("show_floating_timer"), True),
            floating_timer_x=_as_int(data.get("floating_timer_x"), 0),
            floating_timer_y=_as_int(data.get("floating_timer_y"), 0),
            log_level=_as_str(data.get("log_level", DEFAULT_LOG_LEVEL), DEFAULT_LOG_LEVEL),
            extra={key: value for key, value in data.items() if key not in known},
        )
        settings.ensure_defaults()
        return settings


__all__ = [
    "ConsoleSettings",
    "CountdownEntry",
    "EntryState",
    "GLOBAL_SCOPE_KEY",
    "SchedulePreset",
    "ScheduleType",
    "Scope",
    "ScopeKind",
    "detect_local_timezone",
    "normalize_timezone_name",
]
