"""
SecretGuard — mediates every acquisition of a short-lived secret.

    guard = SecretGuard(store, CallerPolicy.allow("alice"), MemoryAuditSink())
    with guard.acquire("wallet1", "alice") as key:
        sign(tx, key.reveal())
    # payload zeroed here, even if sign() raised

Order of checks on acquire: identifier shape → requested lifetime → caller
policy → (exclusive slot) → store lookup → fingerprint. A requested lifetime
only ever shortens the guard's own. A denied caller never reaches the store.
Every acquire appends exactly one AccessRecord; release, expiry and
authorization resets append one each. Payloads never reach a record, a log
line, or an exception message.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import threading
from collections.abc import Mapping
from typing import Any

from secretguard.audit.sinks import AuditSink
from secretguard.clock import ManualClock, MonotonicClock
from secretguard.errors import (
    AuditWriteFailure,
    AuthorizationError,
    IntegrityCheckError,
    InvalidIdentifierError,
    InvalidLifetimeError,
    LockTimeoutError,
    SecretNotFoundError,
    StoreUnavailableError,
)
from secretguard.models import AccessRecord, EventType, Outcome, Reason, SecretState
from secretguard.policy import CallerPolicy
from secretguard.secret import ScopedSecret, Secret
from secretguard.stores import SecretStore
from secretguard.watchdog import ExpiryWatchdog

logger = logging.getLogger(__name__)

DEFAULT_LIFETIME = 30.0
DEFAULT_LOCK_TIMEOUT = 5.0


class SecretGuard:
    def __init__(
        self,
        store: SecretStore,
        policy: CallerPolicy,
        audit: AuditSink,
        *,
        service_id: str = "secretguard",
        grant_service_id: str | None = None,
        lifetime: float = DEFAULT_LIFETIME,
        clock: MonotonicClock | ManualClock | None = None,
        exclusive: bool = False,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        fingerprints: Mapping[str, str] | None = None,
    ) -> None:
        if not _valid_seconds(lifetime):
            raise InvalidLifetimeError(lifetime)
        if not (math.isfinite(lock_timeout) and lock_timeout >= 0):
            raise ValueError(f"lock_timeout must be a finite number >= 0, got {lock_timeout!r}")
        self._store = store
        self._policy = policy
        self._fingerprints = dict(fingerprints or {})
        self._audit = audit
        self.service_id = service_id
        self.grant_service_id = grant_service_id or f"{service_id}.grants"
        self.lifetime = lifetime
        self.exclusive = exclusive
        self.lock_timeout = lock_timeout
        self._clock = clock or MonotonicClock()

        self._lock = threading.Lock()
        self._slot_freed = threading.Condition(self._lock)
        self._live: dict[int, ScopedSecret] = {}
        self._holders: dict[str, ScopedSecret] = {}  # exclusive mode only
        self._audit_gaps = 0

        self._watchdog = ExpiryWatchdog(self._clock, self._expire)
        self._watchdog.start()

    # ─── Properties ──────────────────────────────────────────────────

    @property
    def policy(self) -> CallerPolicy:
        return self._policy

    @property
    def clock(self) -> MonotonicClock | ManualClock:
        return self._clock

    @property
    def audit_gaps(self) -> int:
        """Records the sink failed to persist since startup."""
        return self._audit_gaps

    def active_count(self) -> int:
        with self._lock:
            return len(self._live)

    # ─── Operations ──────────────────────────────────────────────────

    def acquire(
        self,
        identifier: str,
        caller: str,
        *,
        token: str | None = None,
        lifetime: float | None = None,
    ) -> ScopedSecret:
        """Check policy, fetch the payload, and hand out a time-boxed handle."""
        if not isinstance(identifier, str) or not identifier.strip():
            self._record(
                EventType.ACQUIRE,
                str(identifier) if isinstance(identifier, str) else "",
                caller,
                Outcome.DENIED,
                Reason.INVALID_IDENTIFIER,
            )
            raise InvalidIdentifierError(identifier, caller)

        if lifetime is not None and not _valid_seconds(lifetime):
            self._record(
                EventType.ACQUIRE, identifier, caller, Outcome.DENIED,
                Reason.INVALID_LIFETIME, f"requested lifetime={lifetime!r}",
            )
            raise InvalidLifetimeError(lifetime, identifier, caller)
        # A caller may shorten its window, never extend it past the guard's
        granted_lifetime = self.lifetime if lifetime is None else min(lifetime, self.lifetime)

        policy = self._policy
        if not policy.permits(caller, identifier, token):
            why = policy.denial_reason(caller, identifier, token)
            logger.warning("Denied %s to caller %s: %s", identifier, caller, why)
            self._record(
                EventType.ACQUIRE, identifier, caller, Outcome.DENIED,
                Reason.UNAUTHORIZED_CALLER, why,
            )
            raise AuthorizationError(identifier, caller, why)

        if self.exclusive:
            self._claim_slot(identifier, caller)

        try:
            payload = self._fetch(identifier, caller)
            secret = Secret(
                identifier,
                payload,
                acquired_at=self._clock.now(),
                lifetime=granted_lifetime,
            )
            del payload
        except BaseException:
            if self.exclusive:
                self._free_slot(identifier, None)
            raise

        handle = ScopedSecret(
            secret,
            caller,
            clock=self._clock,
            on_release=self.release,
            on_overdue=self._expire,
        )
        try:
            with self._lock:
                self._live[id(handle)] = handle
                if self.exclusive:
                    self._holders[identifier] = handle
            self._watchdog.schedule(handle, secret.expires_at)
            self._record(
                EventType.ACQUIRE, identifier, caller, Outcome.GRANTED,
                detail=f"lifetime={secret.lifetime:g}s",
            )
        except BaseException:
            # Caller never receives the handle, so nothing else would release it
            handle._invalidate(SecretState.RELEASED)
            self._retire(handle)
            if self.exclusive:
                self._free_slot(identifier, None)
            raise
        logger.debug("Granted %s to %s for %gs", identifier, caller, secret.lifetime)
        return handle

    def release(self, secret: ScopedSecret) -> None:
        """Destroy the payload now. Idempotent."""
        if not secret._invalidate(SecretState.RELEASED):
            return
        self._retire(secret)
        self._record(EventType.RELEASE, secret.identifier, secret.caller, Outcome.RELEASED)
        logger.debug("Released %s held by %s", secret.identifier, secret.caller)

    def reset_authorization(self, identifier: str, *, caller: str = "system") -> bool:
        """Revoke any cached trust grant for identifier. Returns True if one existed."""
        if not isinstance(identifier, str) or not identifier.strip():
            self._record(
                EventType.RESET, "", caller, Outcome.FAILED, Reason.INVALID_IDENTIFIER
            )
            raise InvalidIdentifierError(identifier, caller)
        try:
            removed = self._store.delete(self.grant_service_id, identifier)
        except StoreUnavailableError as e:
            self._record(
                EventType.RESET, identifier, caller, Outcome.FAILED,
                Reason.STORE_UNAVAILABLE, e.reason,
            )
            raise StoreUnavailableError(e.reason, identifier=identifier, caller=caller) from e
        except Exception as e:
            self._record(
                EventType.RESET, identifier, caller, Outcome.FAILED,
                Reason.STORE_UNAVAILABLE, type(e).__name__,
            )
            raise StoreUnavailableError(
                type(e).__name__, identifier=identifier, caller=caller
            ) from e
        self._record(
            EventType.RESET, identifier, caller, Outcome.RESET,
            detail="grant revoked" if removed else "no grant cached",
        )
        logger.info("Authorization reset for %s by %s (removed=%s)", identifier, caller, removed)
        return bool(removed)

    def reload_policy(
        self, policy: CallerPolicy, fingerprints: Mapping[str, str] | None = None
    ) -> None:
        """Swap in a new caller policy. Live handles are unaffected."""
        with self._lock:
            self._policy = policy
            if fingerprints is not None:
                self._fingerprints = dict(fingerprints)
        logger.info("Caller policy reloaded: %d callers", len(policy))

    def close(self) -> None:
        """Release every live handle and stop the watchdog."""
        with self._lock:
            live = list(self._live.values())
        for handle in live:
            self.release(handle)
        self._watchdog.stop()

    def __enter__(self) -> SecretGuard:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    # ─── Internals ───────────────────────────────────────────────────

    def _fetch(self, identifier: str, caller: str) -> Any:
        try:
            payload = self._store.get(self.service_id, identifier)
        except StoreUnavailableError as e:
            logger.warning("Store unavailable fetching %s for %s", identifier, caller)
            self._record(
                EventType.ACQUIRE, identifier, caller, Outcome.FAILED,
                Reason.STORE_UNAVAILABLE, e.reason,
            )
            raise StoreUnavailableError(e.reason, identifier=identifier, caller=caller) from e
        except IntegrityCheckError as e:
            self._record(
                EventType.ACQUIRE, identifier, caller, Outcome.DENIED,
                Reason.INTEGRITY_CHECK_FAILED, "store rejected ciphertext",
            )
            raise IntegrityCheckError(identifier, caller) from e
        except Exception as e:
            # Unknown store failure: fail closed, same as unreachable
            logger.warning("Store error fetching %s for %s: %s", identifier, caller, type(e).__name__)
            self._record(
                EventType.ACQUIRE, identifier, caller, Outcome.FAILED,
                Reason.STORE_UNAVAILABLE, type(e).__name__,
            )
            raise StoreUnavailableError(
                type(e).__name__, identifier=identifier, caller=caller
            ) from e

        if payload is None:
            logger.warning("Secret %s not found (caller %s)", identifier, caller)
            self._record(
                EventType.ACQUIRE, identifier, caller, Outcome.DENIED, Reason.NOT_FOUND
            )
            raise SecretNotFoundError(identifier, caller, self.service_id)

        pinned = self._fingerprints.get(identifier)
        if pinned is not None and not _fingerprint_matches(payload, pinned):
            logger.error("Fingerprint mismatch for %s (caller %s)", identifier, caller)
            if isinstance(payload, bytearray):
                payload[:] = bytes(len(payload))
            self._record(
                EventType.ACQUIRE, identifier, caller, Outcome.DENIED,
                Reason.INTEGRITY_CHECK_FAILED, "fingerprint mismatch",
            )
            raise IntegrityCheckError(identifier, caller)
        return payload

    def _expire(self, secret: ScopedSecret) -> None:
        if not secret._invalidate(SecretState.EXPIRED):
            return
        self._retire(secret)
        self._record(
            EventType.EXPIRE, secret.identifier, secret.caller, Outcome.EXPIRED,
            detail="lifetime elapsed",
        )
        logger.info("Expired %s held by %s", secret.identifier, secret.caller)

    def _retire(self, secret: ScopedSecret) -> None:
        self._watchdog.cancel(secret)
        with self._lock:
            self._live.pop(id(secret), None)
        if self.exclusive:
            self._free_slot(secret.identifier, secret)

    def _claim_slot(self, identifier: str, caller: str) -> None:
        with self._slot_freed:
            ok = self._slot_freed.wait_for(
                lambda: identifier not in self._holders, timeout=self.lock_timeout
            )
            if ok:
                # Placeholder until the handle exists; keeps the slot ours
                self._holders[identifier] = _PENDING
                return
        self._record(
            EventType.ACQUIRE, identifier, caller, Outcome.DENIED, Reason.LOCK_TIMEOUT,
            f"waited {self.lock_timeout:g}s",
        )
        raise LockTimeoutError(identifier, caller, self.lock_timeout)

    def _free_slot(self, identifier: str, holder: ScopedSecret | None) -> None:
        with self._slot_freed:
            current = self._holders.get(identifier)
            if current is holder or (holder is None and current is _PENDING):
                del self._holders[identifier]
                self._slot_freed.notify_all()

    def _record(
        self,
        event_type: EventType,
        identifier: str,
        caller: str,
        outcome: Outcome,
        reason: Reason | None = None,
        detail: str = "",
    ) -> AccessRecord:
        record = AccessRecord(
            event_type=event_type,
            identifier=identifier,
            caller=str(caller),
            outcome=outcome,
            reason=reason,
            detail=detail,
        )
        try:
            self._audit.append(record)
        except AuditWriteFailure as e:
            with self._lock:
                self._audit_gaps += 1
            logger.critical(
                "AUDIT GAP: %s %s for %s by %s not persisted: %s",
                record.event_type,
                record.outcome,
                record.identifier,
                record.caller,
                e.message,
            )
        return record


_PENDING: Any = object()


def _valid_seconds(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def _fingerprint_matches(payload: bytes | bytearray | str, pinned: str) -> bool:
    data = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
    return hmac.compare_digest(hashlib.sha256(data).hexdigest(), pinned.lower())


def fingerprint(payload: bytes | str) -> str:
    """SHA-256 hex digest to pin in the policy file's fingerprints section."""
    data = payload.encode("utf-8") if isinstance(payload, str) else payload
    return hashlib.sha256(data).hexdigest()
