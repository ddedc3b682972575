"""
Expiry watchdog — forces invalidation of secrets whose lifetime has elapsed.

Every secret gets its own deadline in a heap; there is no process-wide alarm.
Against a real clock a daemon thread sleeps on a condition until the next
deadline (or until a new, earlier one is scheduled). Against a ManualClock the
watchdog sweeps synchronously each time the clock advances.

The expire callback runs outside the watchdog lock so it may call back into
cancel() or schedule().
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class ExpiryWatchdog:
    def __init__(
        self,
        clock: Any,
        on_expire: Callable[[Any], object],
        *,
        name: str = "secretguard-watchdog",
    ) -> None:
        self._clock = clock
        self._on_expire = on_expire
        self._name = name
        self._heap: list[tuple[float, int, Any]] = []
        self._pending: dict[int, float] = {}  # id(handle) → deadline
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._thread: threading.Thread | None = None
        self._running = False
        self._listening = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Begin enforcing deadlines. Idempotent."""
        with self._cond:
            if self._running:
                return
            self._running = True
        if getattr(self._clock, "realtime", True):
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()
        elif not self._listening:
            self._clock.add_listener(self._on_tick)
            self._listening = True
        logger.debug("Watchdog %s started", self._name)

    def stop(self, timeout: float = 2.0) -> None:
        with self._cond:
            self._running = False
            self._cond.notify_all()
            listening, self._listening = self._listening, False
        if listening:
            self._clock.remove_listener(self._on_tick)
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug("Watchdog %s stopped", self._name)

    def schedule(self, handle: Any, deadline: float) -> None:
        with self._cond:
            self._pending[id(handle)] = deadline
            heapq.heappush(self._heap, (deadline, next(self._seq), handle))
            self._cond.notify_all()

    def cancel(self, handle: Any) -> bool:
        with self._cond:
            return self._pending.pop(id(handle), None) is not None

    def pending(self) -> int:
        with self._cond:
            return len(self._pending)

    def next_deadline(self) -> float | None:
        with self._cond:
            self._drop_cancelled()
            return self._heap[0][0] if self._heap else None

    def sweep(self, now: float | None = None) -> int:
        """Expire every handle whose deadline is <= now. Returns the count."""
        if now is None:
            now = self._clock.now()
        due: list[Any] = []
        with self._cond:
            while self._heap and self._heap[0][0] <= now:
                deadline, _, handle = heapq.heappop(self._heap)
                if self._pending.get(id(handle)) == deadline:
                    del self._pending[id(handle)]
                    due.append(handle)
        for handle in due:
            try:
                self._on_expire(handle)
            except Exception:
                logger.exception("Watchdog expire callback failed")
        return len(due)

    def _on_tick(self, now: float) -> None:
        if self._running:
            self.sweep(now)

    def _drop_cancelled(self) -> None:
        while self._heap:
            deadline, _, handle = self._heap[0]
            if self._pending.get(id(handle)) == deadline:
                return
            heapq.heappop(self._heap)

    def _run(self) -> None:
        while True:
            with self._cond:
                if not self._running:
                    return
                self._drop_cancelled()
                if self._heap:
                    delay = self._heap[0][0] - self._clock.now()
                    if delay > 0:
                        self._cond.wait(delay)
                else:
                    self._cond.wait()
                if not self._running:
                    return
            self.sweep()
