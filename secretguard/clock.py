"""
Clocks for secret lifetimes.

MonotonicClock is the production clock: the expiry watchdog runs its own
thread against it. ManualClock only moves when advanced, and notifies its
listeners synchronously, so expiry in tests is deterministic.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class MonotonicClock:
    """Wall-clock-independent seconds from time.monotonic()."""

    realtime = True

    def now(self) -> float:
        return time.monotonic()

    def add_listener(self, callback: Callable[[float], object]) -> None:
        """Real time needs no push notifications; the watchdog thread sleeps to each deadline."""

    def remove_listener(self, callback: Callable[[float], object]) -> None:
        pass


class ManualClock:
    """A clock that only advances when told to."""

    realtime = False

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._lock = threading.Lock()
        self._listeners: list[Callable[[float], object]] = []

    def now(self) -> float:
        with self._lock:
            return self._now

    def add_listener(self, callback: Callable[[float], object]) -> None:
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[float], object]) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now += seconds
            now = self._now
            listeners = list(self._listeners)
        for callback in listeners:
            callback(now)
        return now

    def set(self, value: float) -> float:
        return self.advance(value - self.now())
