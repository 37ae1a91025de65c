"""Immediate, provisional store changes for enable/disable actions."""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Mapping

from .generations import ALL_SCOPES_KEY, RequestGenerations
from .models import CountdownEntry, SchedulePreset, Scope
from .polling import PollingCoordinator
from .request_runner import Operation, RequestOutcome, RequestRunner
from .schedule_api import ScheduleApi
from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


def _coerce_preset(preset: SchedulePreset | Mapping[str, Any]) -> SchedulePreset:
    if isinstance(preset, SchedulePreset):
        return preset
    return SchedulePreset.from_dict(preset)


class OptimisticMutator:
    """
    Applies enable/disable intents to the store ahead of the server.

    Enabling the global schedule drops every per-entity entry, and enabling
    an entity drops the global entry, so the two never coexist locally. The
    provisional entry never carries a number; only the server supplies one.
    """

    def __init__(
        self,
        *,
        store: ScheduleStore,
        api: ScheduleApi,
        runner: RequestRunner,
        generations: RequestGenerations,
        coordinator: PollingCoordinator,
    ) -> None:
        self._store = store
        self._api = api
        self._runner = runner
        self._generations = generations
        self._coordinator = coordinator
        self._closed = False

    def close(self) -> None:
        self._closed = True

    def enable(
        self, scope: Scope, preset: SchedulePreset | Mapping[str, Any]
    ) -> Operation:
        """
        Enable ``scope`` with ``preset``.

        Raises ``PresetValidationError`` before touching the store when the
        preset is malformed. The returned operation resolves with the
        confirmed entry (or ``None`` if it was superseded) and rejects with
        ``NetworkFailure`` when the command fails, leaving the entry
        provisional until the next successful poll.
        """
        payload = _coerce_preset(preset).to_payload()
        self._ensure_open()

        current = self._store.snapshot()
        dropped = {
            key
            for key, entry in current.items()
            if entry.scope.is_global != scope.is_global
        }
        kept = [
            entry
            for key, entry in current.items()
            if key not in dropped and key != scope.key
        ]
        self._generations.supersede({ALL_SCOPES_KEY, scope.key, *dropped})
        tag = self._generations.issue(scope.key)
        self._store.replace_all([*kept, CountdownEntry.provisional(scope)])
        logger.info(
            "Enabling %s (%s); dropped %s",
            scope,
            payload["scheduleType"],
            sorted(dropped) or "nothing",
        )

        operation = Operation(f"enable:{scope.key}")
        if scope.is_global:
            request = partial(self._api.enable_global, payload)
        else:
            request = partial(self._api.enable_entity, str(scope.entity_id), payload)

        self._generations.begin_command(scope.key)

        def on_done(outcome: RequestOutcome) -> None:
            self._generations.end_command(scope.key)
            if self._closed:
                operation.resolve(None)
                return
            if not outcome.ok:
                logger.warning("Enable %s failed: %s", scope, outcome.error)
                operation.reject(outcome.error)
                return
            if not self._generations.is_current(scope.key, tag):
                logger.debug("Enable response for %s superseded", scope)
                operation.resolve(None)
                return

            countdown: CountdownEntry | None = outcome.value
            if countdown is not None and countdown.scope == scope:
                self._store.set_many([countdown])
                operation.resolve(countdown)
                return

            refresh = self._coordinator.refresh_one(scope)
            refresh.add_done_callback(
                lambda finished: operation.resolve(
                    finished.value if finished.succeeded else None
                )
            )

        self._runner.submit(request, on_done)
        return operation

    def disable(self, scope: Scope) -> Operation:
        """
        Disable ``scope``.

        The entry disappears immediately and a full snapshot poll always
        follows the command. A failed command still rejects the operation so
        the caller can report it, even though the poll resynchronizes the UI.
        """
        self._ensure_open()

        self._generations.supersede({ALL_SCOPES_KEY, scope.key})
        self._store.remove(scope)
        logger.info("Disabling %s", scope)

        operation = Operation(f"disable:{scope.key}")
        self._generations.begin_command(scope.key)

        def on_done(outcome: RequestOutcome) -> None:
            self._generations.end_command(scope.key)
            if self._closed:
                operation.resolve(None)
                return

            refresh = self._coordinator.refresh_all()
            if not outcome.ok:
                logger.warning("Disable %s failed: %s", scope, outcome.error)
                operation.reject(outcome.error)
                return
            refresh.add_done_callback(lambda _finished: operation.resolve(None))

        self._runner.submit(partial(self._api.disable, scope), on_done)
        return operation

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Schedule engine has been shut down.")


__all__ = ["OptimisticMutator"]
