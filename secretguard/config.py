"""
Centralized configuration for SecretGuard.

All configuration is loaded from environment variables with sensible defaults.
Secret values never live here: only where to find them and how long to hold them.

Usage:
    from secretguard.config import get_config
    cfg = get_config()
    print(cfg.guard.lifetime_seconds)   # 30.0
    print(cfg.workspace)                # "/home/user/.secretguard" or $SECRETGUARD_WORKSPACE
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path

from secretguard.errors import ConfigError

_TRUTHY = {"1", "true", "yes", "on"}


def _is_truthy(value: str | None) -> bool:
    return bool(value and value.strip().lower() in _TRUTHY)


def _seconds(var: str, default: str, *, allow_zero: bool = False) -> float:
    """Read a duration in seconds; NaN, infinity and negatives are rejected."""
    raw = os.environ.get(var, default)
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid {var}: '{raw}' is not a number") from e
    if not math.isfinite(value) or value < 0 or (value == 0 and not allow_zero):
        bound = "zero or more" if allow_zero else "above zero"
        raise ConfigError(f"Invalid {var}: '{raw}' must be a finite number of seconds, {bound}")
    return value


def _default_workspace() -> Path:
    return Path.home() / ".secretguard"


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection parameters (vault store + audit table)."""

    host: str = ""  # empty = Unix socket (peer auth); set to 127.0.0.1 for TCP
    port: int = 5432
    name: str = "secretguard"
    user: str = "secretguard"
    password: str = ""
    connect_timeout: int = 5

    @property
    def dsn(self) -> str:
        """Return a psycopg2-compatible DSN string."""
        parts = [f"dbname={self.name}"]
        if self.host:
            parts.append(f"host={self.host}")
        parts.append(f"port={self.port}")
        if self.user:
            parts.append(f"user={self.user}")
        if self.password:
            parts.append(f"password={self.password}")
        parts.append(f"connect_timeout={self.connect_timeout}")
        return " ".join(parts)

    @property
    def dict(self) -> dict[str, str | int]:
        """Return a psycopg2.connect() kwargs dict."""
        d: dict[str, str | int] = {
            "dbname": self.name,
            "port": self.port,
            "connect_timeout": self.connect_timeout,
        }
        if self.host:
            d["host"] = self.host
        if self.user:
            d["user"] = self.user
        if self.password:
            d["password"] = self.password
        return d


@dataclass(frozen=True)
class GuardConfig:
    """Secret lifecycle parameters."""

    service_id: str = "secretguard"
    grant_service_id: str = "secretguard.grants"
    lifetime_seconds: float = 30.0
    exclusive: bool = False
    lock_timeout_seconds: float = 5.0


@dataclass(frozen=True)
class Config:
    """Top-level SecretGuard configuration."""

    workspace: Path = field(default_factory=_default_workspace)
    policy_file: Path = field(default_factory=lambda: _default_workspace() / "policy.yaml")

    # Backends
    store_backend: str = "vault"  # vault | memory
    audit_backend: str = "jsonl"  # jsonl | postgres | memory
    audit_path: Path = field(
        default_factory=lambda: _default_workspace() / "audit" / "access.jsonl"
    )

    guard: GuardConfig = field(default_factory=GuardConfig)
    db: DatabaseConfig = field(default_factory=DatabaseConfig)

    @property
    def master_key_path(self) -> Path:
        return self.workspace / ".vault-key"


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    workspace = Path(os.environ.get("SECRETGUARD_WORKSPACE", _default_workspace()))
    service_id = os.environ.get("SECRETGUARD_SERVICE_ID", "secretguard")

    guard = GuardConfig(
        service_id=service_id,
        grant_service_id=os.environ.get("SECRETGUARD_GRANT_SERVICE_ID", f"{service_id}.grants"),
        lifetime_seconds=_seconds("SECRETGUARD_LIFETIME_SECONDS", "30"),
        exclusive=_is_truthy(os.environ.get("SECRETGUARD_EXCLUSIVE")),
        lock_timeout_seconds=_seconds("SECRETGUARD_LOCK_TIMEOUT_SECONDS", "5", allow_zero=True),
    )

    db = DatabaseConfig(
        host=os.environ.get("SECRETGUARD_DB_HOST", ""),
        port=int(os.environ.get("SECRETGUARD_DB_PORT", "5432")),
        name=os.environ.get("SECRETGUARD_DB_NAME", "secretguard"),
        user=os.environ.get("SECRETGUARD_DB_USER", os.environ.get("USER", "secretguard")),
        password=os.environ.get("SECRETGUARD_DB_PASSWORD", ""),
    )

    return Config(
        workspace=workspace,
        policy_file=Path(os.environ.get("SECRETGUARD_POLICY_FILE", workspace / "policy.yaml")),
        store_backend=os.environ.get("SECRETGUARD_STORE", "vault").strip().lower(),
        audit_backend=os.environ.get("SECRETGUARD_AUDIT", "jsonl").strip().lower(),
        audit_path=Path(
            os.environ.get("SECRETGUARD_AUDIT_PATH", workspace / "audit" / "access.jsonl")
        ),
        guard=guard,
        db=db,
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
