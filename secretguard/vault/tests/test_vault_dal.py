"""Tests for secretguard.vault.dal — uses mocked DB connections."""

import secrets
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from secretguard.vault import dal
from secretguard.vault.crypto import decrypt, encrypt

KEY = secrets.token_bytes(32)


@pytest.fixture(autouse=True)
def clean_factory():
    dal.reset_connection_factory()
    yield
    dal.reset_connection_factory()


def _mock_conn(fetchone_return=None, fetchall_return=None, rowcount=0):
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    cursor.fetchone.return_value = fetchone_return
    cursor.fetchall.return_value = fetchall_return or []
    cursor.rowcount = rowcount
    return conn, cursor


class TestSetSecret:
    def test_upsert_stores_ciphertext(self):
        conn, cursor = _mock_conn()
        dal.set_connection_factory(lambda: conn)

        dal.set_secret("svc", "wallet1", "plain", KEY, metadata={"owner": "ops"})

        sql, params = cursor.execute.call_args[0]
        assert "ON CONFLICT" in sql
        assert params[0] == "svc"
        assert params[1] == "wallet1"
        assert b"plain" not in params[2]
        assert decrypt(params[2], KEY, service_id="svc", identifier="wallet1") == b"plain"
        assert params[3] == '{"owner": "ops"}'
        conn.commit.assert_called_once()
        conn.close.assert_called_once()


class TestGetSecret:
    def test_found(self):
        blob = encrypt("plain", KEY, service_id="svc", identifier="wallet1")
        conn, _ = _mock_conn(fetchone_return=(memoryview(blob),))
        dal.set_connection_factory(lambda: conn)
        assert dal.get_secret("svc", "wallet1", KEY) == b"plain"
        conn.close.assert_called_once()

    def test_missing(self):
        conn, _ = _mock_conn(fetchone_return=None)
        dal.set_connection_factory(lambda: conn)
        assert dal.get_secret("svc", "nope", KEY) is None

    def test_foreign_row_rejected(self):
        blob = encrypt("plain", KEY, service_id="svc", identifier="wallet2")
        conn, _ = _mock_conn(fetchone_return=(blob,))
        dal.set_connection_factory(lambda: conn)
        with pytest.raises(ValueError):
            dal.get_secret("svc", "wallet1", KEY)
        conn.close.assert_called_once()


class TestDeleteAndList:
    def test_delete(self):
        conn, _ = _mock_conn(rowcount=1)
        dal.set_connection_factory(lambda: conn)
        assert dal.delete_secret("svc", "wallet1") is True
        conn.commit.assert_called_once()

    def test_delete_nothing(self):
        conn, _ = _mock_conn(rowcount=0)
        dal.set_connection_factory(lambda: conn)
        assert dal.delete_secret("svc", "wallet1") is False

    def test_list_entries(self):
        ts = datetime(2026, 3, 1, 9, 0, 0)
        conn, cursor = _mock_conn(fetchall_return=[("svc", "wallet1", None, ts, ts)])
        dal.set_connection_factory(lambda: conn)
        entries = dal.list_entries("svc")
        assert len(entries) == 1
        assert entries[0].identifier == "wallet1"
        assert entries[0].metadata == {}
        assert cursor.execute.call_args[0][1] == ("svc",)


class TestFacade:
    def test_set_and_list_use_master_key_and_dal(self):
        from secretguard import vault

        conn, cursor = _mock_conn()
        dal.set_connection_factory(lambda: conn)
        with patch("secretguard.vault.get_master_key", return_value=KEY):
            vault.set("svc", "wallet1", "plain")
        blob = cursor.execute.call_args[0][1][2]
        assert decrypt(blob, KEY, service_id="svc", identifier="wallet1") == b"plain"
        assert vault.__all__ == ["set", "delete", "list", "init_master_key", "VaultEntry"]
