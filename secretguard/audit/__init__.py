"""Append-only audit trail for secret access."""

from secretguard.audit.sinks import AuditSink, JsonlAuditSink, MemoryAuditSink, PostgresAuditSink

__all__ = ["AuditSink", "JsonlAuditSink", "MemoryAuditSink", "PostgresAuditSink"]
