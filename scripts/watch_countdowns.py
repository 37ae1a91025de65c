"""Print the active auto-sync countdown from the terminal, without Qt."""

from __future__ import annotations

import argparse
import time
from collections.abc import Callable

from groupsync.engine import ScheduleEngine
from groupsync.logging_setup import configure_logging
from groupsync.request_runner import InlineRequestRunner
from groupsync.schedule_api import ScheduleApiClient
from groupsync.scheduler_toggle import format_countdown
from groupsync.settings_store import load_settings


class _LoopTimer:
    """Interval timer driven by the watcher's own sleep loop."""

    def __init__(self, interval_ms: int, callback: Callable[[], None]) -> None:
        self.interval_seconds = max(1, int(interval_ms)) / 1000.0
        self.callback = callback
        self.next_due: float | None = None

    def start(self) -> None:
        self.next_due = time.monotonic() + self.interval_seconds

    def stop(self) -> None:
        self.next_due = None

    def fire_if_due(self, now: float) -> None:
        if self.next_due is None or now < self.next_due:
            return
        self.next_due = now + self.interval_seconds
        self.callback()


def _live_timers(timers: list[_LoopTimer]) -> list[_LoopTimer]:
    # Owners never restart a stopped timer.
    return [timer for timer in timers if timer.next_due is not None]


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Poll the scheduling service and print the soonest countdown."
    )
    parser.add_argument(
        "--seconds",
        type=float,
        default=0.0,
        help="How long to watch before exiting. Use 0 to run until Ctrl+C.",
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Override the configured scheduling service base URL.",
    )
    args = parser.parse_args()

    settings = load_settings()
    if args.api_url:
        settings.api_base_url = args.api_url
    configure_logging(settings.log_level, console=True)

    timers: list[_LoopTimer] = []

    def timer_factory(interval_ms: int, callback: Callable[[], None]) -> _LoopTimer:
        timer = _LoopTimer(interval_ms, callback)
        timers.append(timer)
        return timer

    api = ScheduleApiClient.from_settings(settings)
    engine = ScheduleEngine(
        api=api,
        runner=InlineRequestRunner(),
        timer_factory=timer_factory,
        settings=settings,
    )

    print(f"Watching {settings.api_base_url} ...")
    initial = engine.start()
    if initial.error is not None:
        print(f"Initial poll failed: {initial.error}")

    lease = None
    started_at = time.monotonic()
    last_line = ""
    try:
        while True:
            now = time.monotonic()
            timers[:] = _live_timers(timers)
            for timer in list(timers):
                timer.fire_if_due(now)

            active = engine.view.active
            if lease is not None and (active is None or lease.scope != active.scope):
                lease.release()
                lease = None
            if active is not None and lease is None:
                lease = engine.acquire_ticks(active.scope)

            if active is None:
                line = "No auto-sync schedule enabled."
            else:
                line = f"{active.label}  {format_countdown(active.seconds_remaining)}"
            if line != last_line:
                print(line)
                last_line = line

            if args.seconds > 0 and now - started_at >= args.seconds:
                break

            time.sleep(0.05)
    except KeyboardInterrupt:
        pass
    finally:
        if lease is not None:
            lease.release()
        engine.shutdown()
        api.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
