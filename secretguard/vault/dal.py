"""
Vault DAL — CRUD operations on the vault_secrets table.

Rows are keyed by (service_id, identifier). Values are AES-256-GCM ciphertexts;
plaintext never reaches the database or the log.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from secretguard.vault.crypto import decrypt, encrypt
from secretguard.vault.models import VaultEntry

logger = logging.getLogger(__name__)

# Lazy connection resolution so tests can inject a fake
_conn_factory = None


def _get_conn():
    """Get a database connection using the standard SecretGuard config."""
    if _conn_factory is not None:
        return _conn_factory()

    import psycopg2

    from secretguard.config import get_config

    cfg = get_config().db
    return psycopg2.connect(**cfg.dict)


def set_connection_factory(factory):
    """Override connection factory for testing."""
    global _conn_factory
    _conn_factory = factory


def reset_connection_factory():
    global _conn_factory
    _conn_factory = None


def set_secret(
    service_id: str,
    identifier: str,
    value: bytes | str,
    master_key: bytes,
    *,
    metadata: dict | None = None,
) -> None:
    """Encrypt and upsert a secret."""
    encrypted = encrypt(value, master_key, service_id=service_id, identifier=identifier)
    meta_json = json.dumps(metadata or {})

    conn = _get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO vault_secrets (service_id, identifier, encrypted_value, metadata, updated_at)
                VALUES (%s, %s, %s, %s::jsonb, %s)
                ON CONFLICT (service_id, identifier)
                DO UPDATE SET encrypted_value = EXCLUDED.encrypted_value,
                              metadata = EXCLUDED.metadata,
                              updated_at = EXCLUDED.updated_at
                """,
                (service_id, identifier, encrypted, meta_json, datetime.now(UTC)),
            )
        conn.commit()
    finally:
        conn.close()
    logger.info("Stored secret %s/%s", service_id, identifier)


def get_secret(service_id: str, identifier: str, master_key: bytes) -> bytes | None:
    """Retrieve and decrypt a secret. Returns None if not found."""
    conn = _get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT encrypted_value FROM vault_secrets WHERE service_id = %s AND identifier = %s",
                (service_id, identifier),
            )
            row = cur.fetchone()
            if not row:
                return None
            return decrypt(
                bytes(row[0]), master_key, service_id=service_id, identifier=identifier
            )
    finally:
        conn.close()


def delete_secret(service_id: str, identifier: str) -> bool:
    """Delete a secret. Returns True if a row was deleted."""
    conn = _get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM vault_secrets WHERE service_id = %s AND identifier = %s",
                (service_id, identifier),
            )
            deleted = cur.rowcount > 0
        conn.commit()
        return deleted
    finally:
        conn.close()


def list_entries(service_id: str | None = None) -> list[VaultEntry]:
    """List secret metadata (never values), optionally for one service."""
    conn = _get_conn()
    try:
        with conn.cursor() as cur:
            if service_id:
                cur.execute(
                    "SELECT service_id, identifier, metadata, created_at, updated_at "
                    "FROM vault_secrets WHERE service_id = %s ORDER BY identifier",
                    (service_id,),
                )
            else:
                cur.execute(
                    "SELECT service_id, identifier, metadata, created_at, updated_at "
                    "FROM vault_secrets ORDER BY service_id, identifier"
                )
            return [
                VaultEntry(
                    service_id=r[0],
                    identifier=r[1],
                    metadata=r[2] or {},
                    created_at=r[3],
                    updated_at=r[4],
                )
                for r in cur.fetchall()
            ]
    finally:
        conn.close()
