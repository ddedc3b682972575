"""
SecretGuard exception hierarchy.

    SecretGuardError (base)
    ├── AuthorizationError      caller not permitted; terminal, never retried
    ├── SecretNotFoundError     identifier absent in the store; terminal
    ├── SecretExpiredError      handle used after forced invalidation
    │   └── SecretReleasedError handle used after explicit release
    ├── StoreUnavailableError   transient infrastructure failure; retryable
    ├── AuditWriteFailure       audit record could not be persisted
    ├── IntegrityCheckError     payload does not match its pinned fingerprint
    ├── LockTimeoutError        exclusive mode: holder did not release in time
    ├── InvalidIdentifierError  empty or non-string identifier
    ├── InvalidLifetimeError    lifetime not a positive finite number of seconds
    ├── PolicyError             caller policy file is malformed
    └── ConfigError             unknown backend or unusable configuration

Messages carry the identifier and the caller's audit-safe name. They never
carry the secret payload or a caller token.
"""

from __future__ import annotations


class SecretGuardError(Exception):
    """Base class for all SecretGuard errors."""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        identifier: str | None = None,
        caller: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.identifier = identifier
        self.caller = caller

    def __str__(self) -> str:
        context = []
        if self.identifier:
            context.append(f"identifier: {self.identifier}")
        if self.caller:
            context.append(f"caller: {self.caller}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class AuthorizationError(SecretGuardError):
    """Caller is not in the policy, presented a bad token, or is out of scope."""

    def __init__(self, identifier: str, caller: str, reason: str = "caller not permitted") -> None:
        super().__init__(f"Access denied: {reason}", identifier=identifier, caller=caller)


class SecretNotFoundError(SecretGuardError):
    def __init__(self, identifier: str, caller: str | None = None, service_id: str = "") -> None:
        where = f" in service '{service_id}'" if service_id else ""
        super().__init__(
            f"Secret '{identifier}' not found{where}", identifier=identifier, caller=caller
        )
        self.service_id = service_id


class SecretExpiredError(SecretGuardError):
    """The handle's possession window closed. Acquire again."""

    def __init__(self, identifier: str, caller: str | None = None, message: str = "") -> None:
        super().__init__(
            message or "Secret expired; re-acquire it", identifier=identifier, caller=caller
        )


class SecretReleasedError(SecretExpiredError):
    def __init__(self, identifier: str, caller: str | None = None) -> None:
        super().__init__(identifier, caller, "Secret already released; re-acquire it")


class StoreUnavailableError(SecretGuardError):
    """The secret store could not be reached. Safe to retry with backoff."""

    retryable = True

    def __init__(
        self,
        reason: str,
        *,
        identifier: str | None = None,
        caller: str | None = None,
    ) -> None:
        super().__init__(f"Secret store unavailable: {reason}", identifier=identifier, caller=caller)
        self.reason = reason


class AuditWriteFailure(SecretGuardError):
    """The audit sink did not persist a record. The access decision still stands."""

    def __init__(self, reason: str, *, identifier: str | None = None, caller: str | None = None) -> None:
        super().__init__(f"Audit write failed: {reason}", identifier=identifier, caller=caller)


class IntegrityCheckError(SecretGuardError):
    def __init__(self, identifier: str, caller: str | None = None) -> None:
        super().__init__(
            "Secret failed its integrity check",
            identifier=identifier,
            caller=caller,
        )


class LockTimeoutError(SecretGuardError):
    def __init__(self, identifier: str, caller: str, timeout: float) -> None:
        super().__init__(
            f"Secret held by another caller; gave up after {timeout:g}s",
            identifier=identifier,
            caller=caller,
        )
        self.timeout = timeout


class InvalidIdentifierError(SecretGuardError, ValueError):
    def __init__(self, identifier: object, caller: str | None = None) -> None:
        super().__init__(
            f"Identifier must be a non-empty string, got {type(identifier).__name__}",
            caller=caller,
        )


class InvalidLifetimeError(SecretGuardError, ValueError):
    def __init__(
        self, lifetime: object, identifier: str | None = None, caller: str | None = None
    ) -> None:
        super().__init__(
            f"Lifetime must be a positive, finite number of seconds, got {lifetime!r}",
            identifier=identifier,
            caller=caller,
        )


class PolicyError(SecretGuardError):
    """The caller policy document could not be loaded or validated."""


class ConfigError(SecretGuardError):
    """Configuration names an unknown backend or is otherwise unusable."""
