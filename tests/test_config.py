"""Tests for secretguard.config — environment-driven configuration."""

from pathlib import Path

import pytest

from secretguard.config import (
    Config,
    DatabaseConfig,
    GuardConfig,
    get_config,
    reset_config,
)
from secretguard.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_config(clean_env):
    """Reset config singleton between tests."""
    reset_config()
    yield
    reset_config()


class TestDatabaseConfig:
    def test_defaults(self):
        db = DatabaseConfig()
        assert db.host == ""
        assert db.port == 5432
        assert db.name == "secretguard"

    def test_dsn(self):
        db = DatabaseConfig(host="db.example.com", port=5433, name="test", user="tester")
        assert "dbname=test" in db.dsn
        assert "host=db.example.com" in db.dsn
        assert "port=5433" in db.dsn
        assert "connect_timeout=5" in db.dsn

    def test_dsn_no_password(self):
        assert "password" not in DatabaseConfig(password="").dsn

    def test_dict(self):
        d = DatabaseConfig(host="localhost", name="test", user="u").dict
        assert d["dbname"] == "test"
        assert d["host"] == "localhost"
        assert d["user"] == "u"

    def test_frozen(self):
        with pytest.raises(AttributeError):
            DatabaseConfig().host = "other"  # type: ignore[misc]


class TestGuardConfig:
    def test_defaults(self):
        g = GuardConfig()
        assert g.lifetime_seconds == 30.0
        assert g.exclusive is False
        assert g.lock_timeout_seconds == 5.0


class TestGetConfig:
    def test_defaults(self):
        cfg = get_config()
        assert isinstance(cfg, Config)
        assert cfg.workspace == Path.home() / ".secretguard"
        assert cfg.store_backend == "vault"
        assert cfg.audit_backend == "jsonl"
        assert cfg.policy_file == cfg.workspace / "policy.yaml"
        assert cfg.master_key_path == cfg.workspace / ".vault-key"
        assert cfg.guard.grant_service_id == "secretguard.grants"

    def test_singleton(self):
        assert get_config() is get_config()

    def test_reset(self):
        first = get_config()
        reset_config()
        assert get_config() is not first

    def test_env_overrides(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("SECRETGUARD_WORKSPACE", str(tmp_path))
        monkeypatch.setenv("SECRETGUARD_SERVICE_ID", "bots")
        monkeypatch.setenv("SECRETGUARD_LIFETIME_SECONDS", "2.5")
        monkeypatch.setenv("SECRETGUARD_EXCLUSIVE", "Yes")
        monkeypatch.setenv("SECRETGUARD_LOCK_TIMEOUT_SECONDS", "0.5")
        monkeypatch.setenv("SECRETGUARD_STORE", " Memory ")
        monkeypatch.setenv("SECRETGUARD_DB_PORT", "6543")

        cfg = get_config()
        assert cfg.workspace == tmp_path
        assert cfg.policy_file == tmp_path / "policy.yaml"
        assert cfg.audit_path == tmp_path / "audit" / "access.jsonl"
        assert cfg.guard.service_id == "bots"
        assert cfg.guard.grant_service_id == "bots.grants"
        assert cfg.guard.lifetime_seconds == 2.5
        assert cfg.guard.exclusive is True
        assert cfg.guard.lock_timeout_seconds == 0.5
        assert cfg.store_backend == "memory"
        assert cfg.db.port == 6543

    @pytest.mark.parametrize("value", ["inf", "nan", "0", "-3", "soon"])
    def test_bad_lifetime_rejected(self, monkeypatch, value):
        monkeypatch.setenv("SECRETGUARD_LIFETIME_SECONDS", value)
        with pytest.raises(ConfigError, match="SECRETGUARD_LIFETIME_SECONDS"):
            get_config()

    def test_lock_timeout_zero_allowed(self, monkeypatch):
        monkeypatch.setenv("SECRETGUARD_LOCK_TIMEOUT_SECONDS", "0")
        assert get_config().guard.lock_timeout_seconds == 0.0

    def test_lock_timeout_inf_rejected(self, monkeypatch):
        monkeypatch.setenv("SECRETGUARD_LOCK_TIMEOUT_SECONDS", "inf")
        with pytest.raises(ConfigError):
            get_config()

    def test_exclusive_off_values(self, monkeypatch):
        monkeypatch.setenv("SECRETGUARD_EXCLUSIVE", "0")
        assert get_config().guard.exclusive is False
