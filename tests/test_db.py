"""Tests for secretguard.db.connection — pooled connections (mocked pool)."""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from secretguard.db import connection


@pytest.fixture(autouse=True)
def no_pool():
    connection._pool = None
    yield
    connection._pool = None


class TestGetConnection:
    def test_commits_and_returns_to_pool(self):
        pool = MagicMock()
        conn = pool.getconn.return_value
        with patch.object(connection, "get_pool", return_value=pool):
            with connection.get_connection() as c:
                assert c is conn
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

    def test_rolls_back_on_error(self):
        pool = MagicMock()
        conn = pool.getconn.return_value
        with patch.object(connection, "get_pool", return_value=pool):
            with pytest.raises(RuntimeError):
                with connection.get_connection():
                    raise RuntimeError("bad statement")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.putconn.assert_called_once_with(conn)


class TestGetPool:
    def test_unreachable_database(self, clean_env):
        with patch(
            "psycopg2.pool.ThreadedConnectionPool",
            side_effect=psycopg2.OperationalError("refused"),
        ):
            with pytest.raises(ConnectionError, match="SECRETGUARD_DB_"):
                connection.get_pool()

    def test_pool_reused(self):
        fake = MagicMock(closed=False)
        with patch("psycopg2.pool.ThreadedConnectionPool", return_value=fake) as ctor:
            assert connection.get_pool() is fake
            assert connection.get_pool() is fake
        ctor.assert_called_once()

    def test_close_pool(self):
        fake = MagicMock(closed=False)
        connection._pool = fake
        connection.close_pool()
        fake.closeall.assert_called_once()
        assert connection._pool is None
