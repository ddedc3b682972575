"""
SecretGuard — scoped, audited, time-boxed access to private keys and other
short-lived secrets for bots sharing one machine.

    from secretguard import create_guard
    guard = create_guard()
    with guard.acquire("wallet1", "signer-bot", token=bot_token) as key:
        sign(tx, key.reveal())
"""

__version__ = "0.1.0"

from secretguard.clock import ManualClock, MonotonicClock
from secretguard.errors import (
    AuditWriteFailure,
    AuthorizationError,
    ConfigError,
    IntegrityCheckError,
    InvalidIdentifierError,
    InvalidLifetimeError,
    LockTimeoutError,
    PolicyError,
    SecretExpiredError,
    SecretGuardError,
    SecretNotFoundError,
    SecretReleasedError,
    StoreUnavailableError,
)
from secretguard.factory import create_guard
from secretguard.guard import SecretGuard, fingerprint
from secretguard.models import AccessRecord, EventType, Outcome, Reason, SecretState
from secretguard.policy import CallerEntry, CallerPolicy, hash_token, load_policy
from secretguard.secret import ScopedSecret

__all__ = [
    "__version__",
    "AccessRecord",
    "AuditWriteFailure",
    "AuthorizationError",
    "CallerEntry",
    "CallerPolicy",
    "ConfigError",
    "EventType",
    "IntegrityCheckError",
    "InvalidIdentifierError",
    "InvalidLifetimeError",
    "LockTimeoutError",
    "ManualClock",
    "MonotonicClock",
    "Outcome",
    "PolicyError",
    "Reason",
    "ScopedSecret",
    "SecretExpiredError",
    "SecretGuard",
    "SecretGuardError",
    "SecretNotFoundError",
    "SecretReleasedError",
    "SecretState",
    "StoreUnavailableError",
    "create_guard",
    "fingerprint",
    "hash_token",
    "load_policy",
]
