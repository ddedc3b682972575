"""
SecretGuard Vault — encrypted secret store backed by PostgreSQL + AES-256-GCM.

Operator API (the guard reads through secretguard.stores.VaultSecretStore):
    vault.set(service_id, identifier, value)   → store encrypted
    vault.delete(service_id, identifier)       → remove
    vault.list(service_id)                     → entries (not values)
"""

from __future__ import annotations

from secretguard.vault.crypto import get_master_key, init_master_key
from secretguard.vault.dal import delete_secret, list_entries, set_secret
from secretguard.vault.models import VaultEntry


def set(service_id: str, identifier: str, value: bytes | str, *, metadata: dict | None = None) -> None:
    """Encrypt and store a secret."""
    set_secret(service_id, identifier, value, get_master_key(), metadata=metadata)


def delete(service_id: str, identifier: str) -> bool:
    """Delete a secret. Returns True if deleted."""
    return delete_secret(service_id, identifier)


def list(service_id: str | None = None) -> list[VaultEntry]:
    return list_entries(service_id)


__all__ = ["set", "delete", "list", "init_master_key", "VaultEntry"]
