"""
SecretGuard Audit Log — PostgreSQL persistence for access records.

Event types:
  - secret.acquire  — every acquisition attempt (granted or denied)
  - secret.release  — explicit release / scope exit
  - secret.expire   — watchdog forced invalidation
  - auth.reset      — cached authorization grant revoked

Unlike most telemetry, a failed write here is not swallowed: log_access raises
AuditWriteFailure so the guard can surface the gap in the trail.

Usage:
    from secretguard.audit.logger import log_access, query_log, stats
    log_access(record)
"""

from __future__ import annotations

import logging

import psycopg2

from secretguard.errors import AuditWriteFailure
from secretguard.models import AccessRecord

logger = logging.getLogger(__name__)

# Resolved lazily so tests can swap in a fake connection
_conn_factory = None

# Keep a stuck database from blocking the guard
STATEMENT_TIMEOUT_MS = 3000


def _get_connection():
    """Get a database connection from the pool, or a direct one as fallback."""
    if _conn_factory is not None:
        return _conn_factory()

    try:
        from secretguard.db.connection import get_pool

        return get_pool().getconn()
    except ConnectionError:
        from secretguard.config import get_config

        return psycopg2.connect(get_config().db.dsn)


def _release_connection(conn):
    """Return connection to pool if using pooled connections."""
    if _conn_factory is not None:
        conn.close()
        return
    try:
        from secretguard.db.connection import get_pool

        get_pool().putconn(conn)
    except Exception:
        conn.close()


def set_connection_factory(factory):
    """Override connection factory for testing."""
    global _conn_factory
    _conn_factory = factory


def reset_connection_factory():
    """Reset connection factory to default."""
    global _conn_factory
    _conn_factory = None


def log_access(record: AccessRecord) -> None:
    """Append one access record. Raises AuditWriteFailure if it was not persisted."""
    try:
        conn = _get_connection()
    except Exception as e:
        raise AuditWriteFailure(
            f"no database connection ({type(e).__name__})",
            identifier=record.identifier,
            caller=record.caller,
        ) from e
    try:
        cur = conn.cursor()
        cur.execute("SET LOCAL statement_timeout = %s", (STATEMENT_TIMEOUT_MS,))
        cur.execute(
            """
            INSERT INTO secret_audit_log
                (record_id, timestamp, event_type, identifier, caller,
                 outcome, reason, detail)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                record.record_id,
                record.timestamp,
                str(record.event_type),
                record.identifier,
                record.caller,
                str(record.outcome),
                str(record.reason) if record.reason else None,
                record.detail or None,
            ),
        )
        conn.commit()
    except Exception as e:
        try:
            conn.rollback()
        except Exception:
            logger.debug("Rollback after failed audit insert also failed")
        raise AuditWriteFailure(
            type(e).__name__, identifier=record.identifier, caller=record.caller
        ) from e
    finally:
        _release_connection(conn)


def query_log(
    limit: int = 50,
    event_type: str | None = None,
    identifier: str | None = None,
    caller: str | None = None,
    outcome: str | None = None,
    since: str | None = None,
) -> list[dict]:
    """Query audit log with filters, newest first."""
    try:
        conn = _get_connection()
        cur = conn.cursor()

        query = (
            "SELECT record_id, timestamp, event_type, identifier, caller, "
            "outcome, reason, detail "
            "FROM secret_audit_log WHERE 1=1"
        )
        params: list = []

        if event_type:
            query += " AND event_type = %s"
            params.append(event_type)
        if identifier:
            query += " AND identifier = %s"
            params.append(identifier)
        if caller:
            query += " AND caller = %s"
            params.append(caller)
        if outcome:
            query += " AND outcome = %s"
            params.append(outcome)
        if since:
            query += " AND timestamp >= %s"
            params.append(since)

        query += " ORDER BY timestamp DESC LIMIT %s"
        params.append(limit)

        cur.execute(query, params)
        rows = cur.fetchall()
        _release_connection(conn)

        return [
            {
                "record_id": r[0],
                "timestamp": r[1].isoformat(),
                "event_type": r[2],
                "identifier": r[3],
                "caller": r[4],
                "outcome": r[5],
                "reason": r[6],
                "detail": r[7] or "",
            }
            for r in rows
        ]
    except Exception as e:
        logger.warning("Audit query_log failed: %s", e)
        return []


def stats() -> dict:
    """Get audit log statistics."""
    try:
        conn = _get_connection()
        cur = conn.cursor()
        cur.execute("""
            SELECT
                COUNT(*) as total,
                COUNT(*) FILTER (WHERE outcome IN ('denied', 'failed')) as denied,
                MIN(timestamp) as earliest,
                MAX(timestamp) as latest
            FROM secret_audit_log
        """)
        row = cur.fetchone()

        cur.execute("""
            SELECT outcome, COUNT(*) FROM secret_audit_log
            GROUP BY outcome ORDER BY COUNT(*) DESC
        """)
        by_outcome = cur.fetchall()
        _release_connection(conn)

        return {
            "total_events": row[0],
            "denied_events": row[1],
            "earliest": row[2].isoformat() if row[2] else None,
            "latest": row[3].isoformat() if row[3] else None,
            "by_outcome": {r[0]: r[1] for r in by_outcome},
        }
    except Exception as e:
        logger.warning("Audit stats failed: %s", e)
        return {"total_events": 0, "error": str(e)}
