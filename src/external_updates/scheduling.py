"""Periodic trigger registration consumed by update-check engines."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

Callback = Callable[[], object]


class Scheduler(Protocol):
    def schedule(self, hook: str, interval_seconds: float, callback: Callback) -> None: ...

    def is_scheduled(self, hook: str) -> bool: ...

    def clear(self, hook: str) -> None: ...

    def on_deactivate(self, component_id: str, callback: Callback) -> None: ...


@dataclass(slots=True)
class ScheduledHook:
    hook: str
    interval_seconds: float
    callback: Callback
    next_run: float


class IntervalScheduler:
    """In-process scheduler; the host decides when to call :meth:`run_pending`."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._hooks: dict[str, ScheduledHook] = {}
        self._deactivation: dict[str, list[Callback]] = {}
        self._lock = threading.Lock()

    def schedule(self, hook: str, interval_seconds: float, callback: Callback) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        with self._lock:
            # First run fires immediately, like a freshly registered cron event.
            self._hooks[hook] = ScheduledHook(
                hook=hook,
                interval_seconds=interval_seconds,
                callback=callback,
                next_run=self._clock(),
            )

    def is_scheduled(self, hook: str) -> bool:
        with self._lock:
            return hook in self._hooks

    def clear(self, hook: str) -> None:
        with self._lock:
            self._hooks.pop(hook, None)

    def on_deactivate(self, component_id: str, callback: Callback) -> None:
        with self._lock:
            self._deactivation.setdefault(component_id, []).append(callback)

    def deactivate(self, component_id: str) -> None:
        with self._lock:
            callbacks = self._deactivation.pop(component_id, [])
        for callback in callbacks:
            callback()

    def run_pending(self, now: float | None = None) -> list[str]:
        """Fire every hook whose next run is due and return their names."""

        now = self._clock() if now is None else now
        with self._lock:
            due = [item for item in self._hooks.values() if item.next_run <= now]
            for item in due:
                item.next_run = now + item.interval_seconds

        for item in due:
            item.callback()
        return [item.hook for item in due]
