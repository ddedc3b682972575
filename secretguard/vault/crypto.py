"""
AES-256-GCM encryption for vault secrets.

Master key is a 32-byte random key stored at $SECRETGUARD_WORKSPACE/.vault-key (chmod 600).
Each secret gets a unique 12-byte nonce prepended to the ciphertext. The
(service_id, identifier) pair is bound in as associated data, so a ciphertext
copied onto another row fails to decrypt.
"""

from __future__ import annotations

import os
import secrets
import stat
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

NONCE_BYTES = 12
TAG_BYTES = 16

_cached_key: bytes | None = None


def init_master_key(workspace: Path | str) -> Path:
    """Generate a new master key file. Returns the path. Idempotent — skips if exists."""
    key_path = Path(workspace) / ".vault-key"
    if key_path.exists():
        return key_path
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(secrets.token_bytes(32))
    key_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 600
    return key_path


def get_master_key(workspace: Path | str | None = None) -> bytes:
    """Load the master key from disk (cached after first read)."""
    global _cached_key
    if _cached_key is not None:
        return _cached_key

    if workspace is None:
        workspace = os.environ.get("SECRETGUARD_WORKSPACE", Path.home() / ".secretguard")
    key_path = Path(workspace) / ".vault-key"
    if not key_path.exists():
        raise FileNotFoundError(
            f"Vault master key not found at {key_path}. "
            "Run 'secretguard init' to generate one."
        )
    mode = key_path.stat().st_mode
    if mode & (stat.S_IRWXG | stat.S_IRWXO):
        raise PermissionError(f"Vault master key {key_path} must not be group/world accessible")
    key = key_path.read_bytes()
    if len(key) != 32:
        raise ValueError(f"Vault master key must be 32 bytes, got {len(key)}")
    _cached_key = key
    return _cached_key


def reset_key_cache() -> None:
    """Clear the cached master key (for testing)."""
    global _cached_key
    _cached_key = None


def _aad(service_id: str, identifier: str) -> bytes:
    return f"{service_id}\x00{identifier}".encode()


def encrypt(
    plaintext: bytes | str,
    master_key: bytes,
    *,
    service_id: str = "",
    identifier: str = "",
) -> bytes:
    """Encrypt with AES-256-GCM. Returns nonce (12 bytes) + ciphertext + tag (16 bytes)."""
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")
    nonce = secrets.token_bytes(NONCE_BYTES)
    aesgcm = AESGCM(master_key)
    return nonce + aesgcm.encrypt(nonce, plaintext, _aad(service_id, identifier))


def decrypt(
    data: bytes,
    master_key: bytes,
    *,
    service_id: str = "",
    identifier: str = "",
) -> bytes:
    """Decrypt nonce + ciphertext + tag back to the raw payload bytes."""
    if len(data) < NONCE_BYTES + TAG_BYTES:
        raise ValueError("Encrypted data too short")
    nonce = data[:NONCE_BYTES]
    aesgcm = AESGCM(master_key)
    try:
        return aesgcm.decrypt(nonce, data[NONCE_BYTES:], _aad(service_id, identifier))
    except InvalidTag as e:
        raise ValueError("Ciphertext failed authentication (wrong key or tampered row)") from e
