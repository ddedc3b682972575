"""
Root-level shared test fixtures.

Inherited by tests/ and the vault test suite. Every guard built here runs on a
ManualClock so expiry is driven by clock.advance(), never by sleeping.
"""

from __future__ import annotations

import uuid

import pytest

from secretguard.audit.sinks import MemoryAuditSink
from secretguard.clock import ManualClock
from secretguard.guard import SecretGuard
from secretguard.policy import CallerPolicy
from secretguard.stores import MemorySecretStore

SERVICE = "svc"
PAYLOAD = "secretpayload"


@pytest.fixture
def test_prefix():
    """Unique prefix for test isolation."""
    return f"test_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def clean_env(monkeypatch):
    """Remove SecretGuard env vars that leak between tests."""
    for key in [
        "SECRETGUARD_WORKSPACE",
        "SECRETGUARD_SERVICE_ID",
        "SECRETGUARD_GRANT_SERVICE_ID",
        "SECRETGUARD_LIFETIME_SECONDS",
        "SECRETGUARD_EXCLUSIVE",
        "SECRETGUARD_LOCK_TIMEOUT_SECONDS",
        "SECRETGUARD_POLICY_FILE",
        "SECRETGUARD_STORE",
        "SECRETGUARD_AUDIT",
        "SECRETGUARD_AUDIT_PATH",
        "SECRETGUARD_DB_HOST",
        "SECRETGUARD_DB_PORT",
        "SECRETGUARD_DB_NAME",
        "SECRETGUARD_DB_USER",
        "SECRETGUARD_DB_PASSWORD",
    ]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> MemorySecretStore:
    return MemorySecretStore({(SERVICE, "wallet1"): PAYLOAD})


@pytest.fixture
def sink() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def make_guard(store, sink, clock):
    """Factory for guards sharing the store/sink/clock fixtures."""
    guards: list[SecretGuard] = []

    def _make(callers=("alice",), **kwargs) -> SecretGuard:
        kwargs.setdefault("service_id", SERVICE)
        kwargs.setdefault("clock", clock)
        guard = SecretGuard(store, CallerPolicy.allow(*callers), sink, **kwargs)
        guards.append(guard)
        return guard

    yield _make
    for g in guards:
        g.close()


@pytest.fixture
def guard(make_guard) -> SecretGuard:
    return make_guard()
