"""HTTP client for the external scheduling service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import httpx

from .errors import NetworkFailure
from .models import ConsoleSettings, CountdownEntry, Scope, normalize_timezone_name

logger = logging.getLogger(__name__)

_COUNTDOWN_PATH = "/schedule/countdown"
_DISABLE_PATH = "/schedule/disable"
_RUN_NOW_PATH = "/schedule/run"
_GLOBAL_SCHEDULE_PATH = "/schedule/global"
_ENTITY_SCHEDULE_PATH = "/schedule/entity/{entity_id}"
_ENTITIES_PATH = "/techbizceos"


@dataclass(frozen=True, slots=True)
class EntitySummary:
    """Minimal grouped-account row needed to render a per-entity toggle."""

    entity_id: str
    name: str = ""
    alias: str = ""

    @property
    def display_name(self) -> str:
        return self.alias or self.name or self.entity_id


class ScheduleApi(Protocol):
    """Commands and queries the engine consumes from the scheduling service."""

    def enable_global(self, preset: Mapping[str, Any]) -> CountdownEntry | None: ...

    def enable_entity(
        self, entity_id: str, preset: Mapping[str, Any]
    ) -> CountdownEntry | None: ...

    def disable(self, scope: Scope) -> None: ...

    def fetch_countdown(self, scope: Scope) -> CountdownEntry: ...

    def fetch_all_countdowns(self) -> list[CountdownEntry]: ...

    def run_now(self) -> None: ...

    def list_entities(self) -> list[EntitySummary]: ...


def _unwrap(payload: Any) -> Any:
    if isinstance(payload, Mapping) and "data" in payload and len(payload) <= 2:
        inner = payload["data"]
        if isinstance(inner, (Mapping, list)):
            return inner
    return payload


def _server_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, Mapping):
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return None


class ScheduleApiClient:
    """
    Thin ``httpx`` wrapper around the schedule endpoints.

    Every failure surfaces as ``NetworkFailure``; callers never see raw
    ``httpx`` exceptions.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timezone_name: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/json",
            "x-timezone": normalize_timezone_name(timezone_name),
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        client_kwargs: dict[str, Any] = {
            "base_url": base_url.rstrip("/"),
            "headers": headers,
        }
        if timeout_seconds is not None:
            client_kwargs["timeout"] = timeout_seconds
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.Client(**client_kwargs)

    @classmethod
    def from_settings(
        cls,
        settings: ConsoleSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> "ScheduleApiClient":
        return cls(
            settings.api_base_url,
            token=settings.api_token,
            timezone_name=settings.timezone,
            timeout_seconds=settings.request_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ScheduleApiClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def enable_global(self, preset: Mapping[str, Any]) -> CountdownEntry | None:
        body = self._request("PUT", _GLOBAL_SCHEDULE_PATH, json=dict(preset))
        return self._embedded_countdown(body)

    def enable_entity(
        self, entity_id: str, preset: Mapping[str, Any]
    ) -> CountdownEntry | None:
        payload = {"entityId": entity_id, **dict(preset)}
        body = self._request(
            "PUT",
            _ENTITY_SCHEDULE_PATH.format(entity_id=entity_id),
            json=payload,
        )
        return self._embedded_countdown(body)

    def disable(self, scope: Scope) -> None:
        self._request("POST", _DISABLE_PATH, json=scope.to_wire_scope())

    def fetch_countdown(self, scope: Scope) -> CountdownEntry:
        body = _unwrap(
            self._request("GET", _COUNTDOWN_PATH, params=scope.to_query_params())
        )
        if not isinstance(body, Mapping):
            raise NetworkFailure(f"Countdown response for {scope} is not an object.")

        payload = dict(body)
        if "scope" not in payload:
            payload.update(scope.to_wire_scope())
        try:
            entry = CountdownEntry.from_wire(payload)
        except ValueError as exc:
            raise NetworkFailure(f"Malformed countdown for {scope}: {exc}") from exc
        if entry.scope != scope:
            raise NetworkFailure(
                f"Countdown response scope {entry.scope} does not match {scope}."
            )
        return entry

    def fetch_all_countdowns(self) -> list[CountdownEntry]:
        body = _unwrap(self._request("GET", _COUNTDOWN_PATH))
        if not isinstance(body, list):
            raise NetworkFailure("Countdown snapshot response is not an array.")
        try:
            return [CountdownEntry.from_wire(item) for item in body]
        except ValueError as exc:
            raise NetworkFailure(f"Malformed countdown snapshot: {exc}") from exc

    def run_now(self) -> None:
        self._request("POST", _RUN_NOW_PATH)

    def list_entities(self) -> list[EntitySummary]:
        body = _unwrap(self._request("GET", _ENTITIES_PATH))
        if not isinstance(body, list):
            raise NetworkFailure("Entity list response is not an array.")

        entities: list[EntitySummary] = []
        for row in body:
            if not isinstance(row, Mapping):
                continue
            entity_id = row.get("_id", row.get("id"))
            if entity_id is None or str(entity_id).strip() == "":
                continue
            entities.append(
                EntitySummary(
                    entity_id=str(entity_id),
                    name=str(row.get("name") or ""),
                    alias=str(row.get("alias") or ""),
                )
            )
        return entities

    def _embedded_countdown(self, body: Any) -> CountdownEntry | None:
        if not isinstance(body, Mapping):
            return None
        countdown = body.get("countdown")
        if countdown is None and isinstance(body.get("data"), Mapping):
            countdown = body["data"].get("countdown")
        if countdown is None:
            return None
        try:
            return CountdownEntry.from_wire(countdown)
        except ValueError as exc:
            logger.warning("Ignoring malformed embedded countdown: %s", exc)
            return None

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            message = _server_message(exc.response) or (
                f"{method} {path} returned HTTP {status_code}"
            )
            raise NetworkFailure(message, status_code=status_code) from exc
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"{method} {path} failed: {exc}") from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkFailure(f"{method} {path} returned invalid JSON") from exc


__all__ = ["EntitySummary", "ScheduleApi", "ScheduleApiClient"]
