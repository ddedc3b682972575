"""Database connection management for SecretGuard."""

from secretguard.db.connection import close_pool, get_connection, get_pool

__all__ = ["close_pool", "get_connection", "get_pool"]
