"""Tests for secretguard.stores — memory store and the vault adapter."""

from unittest.mock import patch

import psycopg2
import pytest

from secretguard.errors import IntegrityCheckError, StoreUnavailableError
from secretguard.stores import MemorySecretStore, SecretStore, VaultSecretStore

KEY = b"k" * 32


class TestMemorySecretStore:
    def test_get_put_delete(self):
        store = MemorySecretStore()
        assert isinstance(store, SecretStore)
        assert store.get("svc", "a") is None
        store.put("svc", "a", "v")
        assert store.get("svc", "a") == "v"
        assert ("svc", "a") in store
        assert store.delete("svc", "a") is True
        assert store.delete("svc", "a") is False
        assert store.get_calls == 2
        assert store.delete_calls == 2

    def test_namespaced_by_service(self):
        store = MemorySecretStore({("svc", "a"): "one"})
        assert store.get("other", "a") is None

    def test_offline(self):
        store = MemorySecretStore()
        store.available = False
        with pytest.raises(StoreUnavailableError) as exc:
            store.get("svc", "a")
        assert exc.value.retryable
        with pytest.raises(StoreUnavailableError):
            store.delete("svc", "a")


class TestVaultSecretStore:
    def test_get(self):
        with patch("secretguard.vault.dal.get_secret", return_value=b"v") as get_secret:
            assert VaultSecretStore(KEY).get("svc", "a") == b"v"
        get_secret.assert_called_once_with("svc", "a", KEY)

    def test_get_db_error(self):
        with patch(
            "secretguard.vault.dal.get_secret",
            side_effect=psycopg2.OperationalError("could not connect"),
        ):
            with pytest.raises(StoreUnavailableError, match="OperationalError"):
                VaultSecretStore(KEY).get("svc", "a")

    def test_get_bad_ciphertext(self):
        with patch("secretguard.vault.dal.get_secret", side_effect=ValueError("tag")):
            with pytest.raises(IntegrityCheckError):
                VaultSecretStore(KEY).get("svc", "a")

    def test_delete_db_error(self):
        with patch(
            "secretguard.vault.dal.delete_secret",
            side_effect=psycopg2.InterfaceError("closed"),
        ):
            with pytest.raises(StoreUnavailableError):
                VaultSecretStore(KEY).delete("svc", "a")

    def test_missing_master_key(self, tmp_path, monkeypatch):
        from secretguard.vault.crypto import reset_key_cache

        reset_key_cache()
        monkeypatch.setenv("SECRETGUARD_WORKSPACE", str(tmp_path))
        try:
            with pytest.raises(StoreUnavailableError, match="master key"):
                VaultSecretStore().get("svc", "a")
        finally:
            reset_key_cache()
