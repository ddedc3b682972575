"""
Secret store adapters.

The guard only needs two calls from a store:

    get(service_id, identifier)    → payload (bytes | str) or None
    delete(service_id, identifier) → True if something was removed

Any infrastructure failure must surface as StoreUnavailableError so the guard
fails closed. A payload the store cannot authenticate raises IntegrityCheckError.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

from secretguard.errors import IntegrityCheckError, StoreUnavailableError

logger = logging.getLogger(__name__)


@runtime_checkable
class SecretStore(Protocol):
    def get(self, service_id: str, identifier: str) -> bytes | str | None: ...

    def delete(self, service_id: str, identifier: str) -> bool: ...


class MemorySecretStore:
    """Thread-safe in-process store. Counts lookups; can be taken offline."""

    def __init__(self, secrets: dict[tuple[str, str], bytes | str] | None = None) -> None:
        self._data: dict[tuple[str, str], bytes | str] = dict(secrets or {})
        self._lock = threading.Lock()
        self.available = True
        self.get_calls = 0
        self.delete_calls = 0

    def put(self, service_id: str, identifier: str, payload: bytes | str) -> None:
        with self._lock:
            self._data[(service_id, identifier)] = payload

    def get(self, service_id: str, identifier: str) -> bytes | str | None:
        with self._lock:
            self.get_calls += 1
            self._check_available(identifier)
            return self._data.get((service_id, identifier))

    def delete(self, service_id: str, identifier: str) -> bool:
        with self._lock:
            self.delete_calls += 1
            self._check_available(identifier)
            return self._data.pop((service_id, identifier), None) is not None

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def _check_available(self, identifier: str) -> None:
        if not self.available:
            raise StoreUnavailableError("memory store offline", identifier=identifier)


class VaultSecretStore:
    """The encrypted PostgreSQL vault (secretguard.vault) as a SecretStore."""

    def __init__(self, master_key: bytes | None = None) -> None:
        self._master_key = master_key

    def _key(self) -> bytes:
        if self._master_key is None:
            from secretguard.vault.crypto import get_master_key

            try:
                self._master_key = get_master_key()
            except (OSError, ValueError) as e:
                raise StoreUnavailableError(f"vault master key unusable: {e}") from e
        return self._master_key

    def get(self, service_id: str, identifier: str) -> bytes | None:
        import psycopg2

        from secretguard.vault.dal import get_secret

        try:
            return get_secret(service_id, identifier, self._key())
        except ValueError as e:
            logger.error("Vault row for %s/%s failed authentication", service_id, identifier)
            raise IntegrityCheckError(identifier) from e
        except psycopg2.Error as e:
            logger.warning("Vault lookup failed for %s/%s: %s", service_id, identifier, e)
            raise StoreUnavailableError(
                type(e).__name__, identifier=identifier
            ) from e

    def delete(self, service_id: str, identifier: str) -> bool:
        import psycopg2

        from secretguard.vault.dal import delete_secret

        try:
            return delete_secret(service_id, identifier)
        except psycopg2.Error as e:
            logger.warning("Vault delete failed for %s/%s: %s", service_id, identifier, e)
            raise StoreUnavailableError(
                type(e).__name__, identifier=identifier
            ) from e
