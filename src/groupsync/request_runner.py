"""Completion-ordered request execution and the handles callers observe."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class RequestOutcome:
    """Result of one request: exactly one of ``value``/``error`` is meaningful."""

    value: Any = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RequestRunner(Protocol):
    """
    Runs blocking request callables away from the engine thread.

    ``on_done`` must be invoked on the engine thread, once per submission, in
    the order requests complete.
    """

    def submit(
        self,
        request: Callable[[], Any],
        on_done: Callable[[RequestOutcome], None],
    ) -> None: ...

    def shutdown(self) -> None: ...


def run_request(request: Callable[[], Any]) -> RequestOutcome:
    """Execute ``request`` and capture its value or exception."""
    try:
        return RequestOutcome(value=request())
    except Exception as exc:
        return RequestOutcome(error=exc)


class InlineRequestRunner:
    """Runs each request synchronously on the calling thread."""

    def __init__(self) -> None:
        self._closed = False

    def submit(
        self,
        request: Callable[[], Any],
        on_done: Callable[[RequestOutcome], None],
    ) -> None:
        if self._closed:
            return
        on_done(run_request(request))

    def shutdown(self) -> None:
        self._closed = True


class LivenessToken:
    """Cancelled when the component that issued a request goes away."""

    __slots__ = ("_alive", "label")

    def __init__(self, label: str = "") -> None:
        self._alive = True
        self.label = label

    @property
    def alive(self) -> bool:
        return self._alive

    def cancel(self) -> None:
        self._alive = False

    def __repr__(self) -> str:
        state = "alive" if self._alive else "cancelled"
        return f"LivenessToken({self.label!r}, {state})"


class Operation:
    """
    Handle for an asynchronous engine call.

    Resolved exactly once on the engine thread. Callbacks added after
    resolution run immediately.
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self._done = False
        self._value: Any = None
        self._error: Exception | None = None
        self._callbacks: list[Callable[[Operation], None]] = []

    @classmethod
    def resolved(cls, value: Any = None, *, label: str = "") -> "Operation":
        operation = cls(label)
        operation.resolve(value)
        return operation

    @classmethod
    def rejected(cls, error: Exception, *, label: str = "") -> "Operation":
        operation = cls(label)
        operation.reject(error)
        return operation

    @property
    def done(self) -> bool:
        return self._done

    @property
    def succeeded(self) -> bool:
        return self._done and self._error is None

    @property
    def value(self) -> Any:
        return self._value

    @property
    def error(self) -> Exception | None:
        return self._error

    def result(self) -> Any:
        """Return the value, re-raise the failure, or complain if pending."""
        if not self._done:
            raise RuntimeError(f"Operation {self.label or '<unnamed>'} is still pending.")
        if self._error is not None:
            raise self._error
        return self._value

    def add_done_callback(self, callback: Callable[["Operation"], None]) -> None:
        if self._done:
            callback(self)
            return
        self._callbacks.append(callback)

    def resolve(self, value: Any = None) -> None:
        self._settle(value, None)

    def reject(self, error: Exception) -> None:
        self._settle(None, error)

    def follow(self, other: "Operation") -> None:
        """Settle this operation the same way ``other`` settles."""
        other.add_done_callback(
            lambda finished: self._settle(finished.value, finished.error)
        )

    def _settle(self, value: Any, error: Exception | None) -> None:
        if self._done:
            return
        self._done = True
        self._value = value
        self._error = error
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def __repr__(self) -> str:
        if not self._done:
            state = "pending"
        elif self._error is not None:
            state = f"rejected: {self._error!r}"
        else:
            state = "resolved"
        return f"Operation({self.label!r}, {state})"


__all__ = [
    "InlineRequestRunner",
    "LivenessToken",
    "Operation",
    "RequestOutcome",
    "RequestRunner",
    "run_request",
]
