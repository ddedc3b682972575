"""
In-memory secrets and the scoped handles callers hold.

The payload lives in a bytearray so it can be overwritten in place at release.
Python cannot promise that no other copy exists (the store may have returned an
immutable str/bytes, and reveal() hands out a copy), so zeroing is best effort;
what it does guarantee is that the guard's own copy is gone deterministically,
without waiting on the garbage collector.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from secretguard.errors import SecretExpiredError, SecretReleasedError
from secretguard.models import SecretState

if TYPE_CHECKING:
    from secretguard.clock import ManualClock, MonotonicClock


def _to_buffer(payload: bytes | bytearray | str) -> bytearray:
    if isinstance(payload, str):
        return bytearray(payload.encode("utf-8"))
    return bytearray(payload)


class Secret:
    """A payload with a bounded lifetime. Never printable."""

    __slots__ = ("identifier", "acquired_at", "lifetime", "_buf")

    def __init__(
        self,
        identifier: str,
        payload: bytes | bytearray | str,
        *,
        acquired_at: float,
        lifetime: float,
    ) -> None:
        self.identifier = identifier
        self.acquired_at = acquired_at
        self.lifetime = lifetime
        self._buf: bytearray | None = _to_buffer(payload)

    @property
    def expires_at(self) -> float:
        return self.acquired_at + self.lifetime

    @property
    def wiped(self) -> bool:
        return self._buf is None

    def read(self) -> bytes:
        if self._buf is None:
            raise SecretExpiredError(self.identifier, message="Secret payload already destroyed")
        return bytes(self._buf)

    def wipe(self) -> bool:
        """Zero the buffer and drop it. Returns False if already wiped."""
        buf, self._buf = self._buf, None
        if buf is None:
            return False
        buf[:] = bytes(len(buf))
        return True

    def __repr__(self) -> str:
        state = "wiped" if self._buf is None else "live"
        return f"<Secret {self.identifier!r} {state}>"


class ScopedSecret:
    """Handle returned by SecretGuard.acquire().

    Use as a context manager so release runs on every exit path:

        with guard.acquire("wallet1", "alice") as key:
            sign(tx, key.reveal())
    """

    def __init__(
        self,
        secret: Secret,
        caller: str,
        *,
        clock: MonotonicClock | ManualClock,
        on_release: Callable[[ScopedSecret], object],
        on_overdue: Callable[[ScopedSecret], object],
    ) -> None:
        self._secret = secret
        self._caller = caller
        self._clock = clock
        self._on_release = on_release
        self._on_overdue = on_overdue
        self._state = SecretState.ACTIVE
        self._lock = threading.Lock()

    @property
    def identifier(self) -> str:
        return self._secret.identifier

    @property
    def caller(self) -> str:
        return self._caller

    @property
    def acquired_at(self) -> float:
        return self._secret.acquired_at

    @property
    def expires_at(self) -> float:
        return self._secret.expires_at

    @property
    def state(self) -> SecretState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state == SecretState.ACTIVE

    def remaining(self) -> float:
        if not self.active:
            return 0.0
        return max(0.0, self.expires_at - self._clock.now())

    def reveal(self) -> bytes:
        """Return a copy of the payload while the handle is live."""
        with self._lock:
            self._raise_if_closed()
            if self._clock.now() < self.expires_at:
                return self._secret.read()
        # Deadline passed before the watchdog got to it
        self._on_overdue(self)
        raise SecretExpiredError(self.identifier, self._caller)

    def reveal_text(self, encoding: str = "utf-8") -> str:
        return self.reveal().decode(encoding)

    def release(self) -> None:
        self._on_release(self)

    def _raise_if_closed(self) -> None:
        if self._state == SecretState.RELEASED:
            raise SecretReleasedError(self.identifier, self._caller)
        if self._state == SecretState.EXPIRED:
            raise SecretExpiredError(self.identifier, self._caller)

    def _invalidate(self, state: SecretState) -> bool:
        """Move out of ACTIVE and destroy the payload. False if already closed."""
        with self._lock:
            if self._state != SecretState.ACTIVE:
                return False
            self._state = state
            self._secret.wipe()
            return True

    def __enter__(self) -> ScopedSecret:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False

    def __repr__(self) -> str:
        return (
            f"<ScopedSecret {self.identifier!r} caller={self._caller!r} "
            f"state={self._state.value}>"
        )
