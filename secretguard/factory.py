"""
Build a SecretGuard from configuration.

Backend selection mirrors the env vars in secretguard.config:
    SECRETGUARD_STORE  "vault" (default) | "memory"
    SECRETGUARD_AUDIT  "jsonl" (default) | "postgres" | "memory"
"""

from __future__ import annotations

import logging

from secretguard.audit.sinks import AuditSink, JsonlAuditSink, MemoryAuditSink, PostgresAuditSink
from secretguard.clock import ManualClock, MonotonicClock
from secretguard.config import Config, get_config
from secretguard.errors import ConfigError
from secretguard.guard import SecretGuard
from secretguard.policy import load_policy_document
from secretguard.stores import MemorySecretStore, SecretStore, VaultSecretStore

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("vault", "memory")
AUDIT_BACKENDS = ("jsonl", "postgres", "memory")


def create_store(config: Config) -> SecretStore:
    backend = config.store_backend
    if backend == "vault":
        return VaultSecretStore()
    if backend == "memory":
        logger.warning("Using in-memory secret store; nothing is persisted")
        return MemorySecretStore()
    raise ConfigError(
        f"Invalid SECRETGUARD_STORE: '{backend}'. Valid options: {', '.join(STORE_BACKENDS)}"
    )


def create_audit_sink(config: Config) -> AuditSink:
    backend = config.audit_backend
    if backend == "jsonl":
        return JsonlAuditSink(config.audit_path)
    if backend == "postgres":
        return PostgresAuditSink()
    if backend == "memory":
        logger.warning("Using in-memory audit sink; the trail is lost at exit")
        return MemoryAuditSink()
    raise ConfigError(
        f"Invalid SECRETGUARD_AUDIT: '{backend}'. Valid options: {', '.join(AUDIT_BACKENDS)}"
    )


def create_guard(
    config: Config | None = None,
    *,
    store: SecretStore | None = None,
    audit: AuditSink | None = None,
    clock: MonotonicClock | ManualClock | None = None,
) -> SecretGuard:
    """Wire store, audit sink and policy file into a ready SecretGuard."""
    config = config or get_config()
    doc = load_policy_document(config.policy_file)
    guard = SecretGuard(
        store if store is not None else create_store(config),
        doc.caller_policy(),
        audit if audit is not None else create_audit_sink(config),
        service_id=config.guard.service_id,
        grant_service_id=config.guard.grant_service_id,
        lifetime=config.guard.lifetime_seconds,
        clock=clock,
        exclusive=config.guard.exclusive,
        lock_timeout=config.guard.lock_timeout_seconds,
        fingerprints=doc.fingerprints,
    )
    logger.info(
        "SecretGuard ready: service=%s store=%s audit=%s callers=%d exclusive=%s",
        config.guard.service_id,
        config.store_backend,
        config.audit_backend,
        len(guard.policy),
        config.guard.exclusive,
    )
    return guard


def reload_policy(guard: SecretGuard, config: Config | None = None) -> None:
    """Re-read the policy file into a running guard."""
    config = config or get_config()
    doc = load_policy_document(config.policy_file)
    guard.reload_policy(doc.caller_policy(), doc.fingerprints)
