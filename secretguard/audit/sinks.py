"""
Audit sinks — append-only destinations for AccessRecords.

Contract: append() writes exactly one record in a single write, or raises
AuditWriteFailure. It must not block indefinitely.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from secretguard.errors import AuditWriteFailure
from secretguard.models import AccessRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class AuditSink(Protocol):
    def append(self, record: AccessRecord) -> None: ...


class MemoryAuditSink:
    """List-backed sink for tests and embedding. Never fails unless told to."""

    def __init__(self) -> None:
        self._records: list[AccessRecord] = []
        self._lock = threading.Lock()
        self.fail_writes = False

    def append(self, record: AccessRecord) -> None:
        with self._lock:
            if self.fail_writes:
                raise AuditWriteFailure(
                    "memory sink offline", identifier=record.identifier, caller=record.caller
                )
            self._records.append(record)

    @property
    def records(self) -> list[AccessRecord]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class JsonlAuditSink:
    """One JSON object per line, appended with a single O_APPEND write."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, record: AccessRecord) -> None:
        line = (record.to_json() + "\n").encode("utf-8")
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
                try:
                    written = os.write(fd, line)
                finally:
                    os.close(fd)
            except OSError as e:
                raise AuditWriteFailure(
                    f"{self.path}: {e.strerror or e}",
                    identifier=record.identifier,
                    caller=record.caller,
                ) from e
        if written != len(line):
            raise AuditWriteFailure(
                f"short write to {self.path} ({written}/{len(line)} bytes)",
                identifier=record.identifier,
                caller=record.caller,
            )

    def read(
        self,
        limit: int | None = None,
        *,
        identifier: str | None = None,
        caller: str | None = None,
        outcome: str | None = None,
        event_type: str | None = None,
        since: str | None = None,
    ) -> list[AccessRecord]:
        """Read records oldest-first, filtered; limit keeps the newest N."""
        if not self.path.exists():
            return []
        cutoff = _parse_since(since)
        records: list[AccessRecord] = []
        with open(self.path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = AccessRecord.from_dict(json.loads(line))
                except (ValueError, KeyError) as e:
                    logger.warning("Skipping corrupt audit line %s:%d: %s", self.path, lineno, e)
                    continue
                if identifier and record.identifier != identifier:
                    continue
                if caller and record.caller != caller:
                    continue
                if outcome and record.outcome != outcome:
                    continue
                if event_type and record.event_type != event_type:
                    continue
                if cutoff and record.timestamp < cutoff:
                    continue
                records.append(record)
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def stats(self) -> dict:
        """Same shape as secretguard.audit.logger.stats(), computed from the file."""
        records = self.read()
        by_outcome = Counter(str(r.outcome) for r in records)
        return {
            "total_events": len(records),
            "denied_events": sum(1 for r in records if r.denied),
            "earliest": min(r.timestamp for r in records).isoformat() if records else None,
            "latest": max(r.timestamp for r in records).isoformat() if records else None,
            "by_outcome": dict(by_outcome.most_common()),
        }


class PostgresAuditSink:
    """secret_audit_log table via secretguard.audit.logger."""

    def append(self, record: AccessRecord) -> None:
        from secretguard.audit.logger import log_access

        log_access(record)

    def read(
        self,
        limit: int | None = None,
        *,
        identifier: str | None = None,
        caller: str | None = None,
        outcome: str | None = None,
        event_type: str | None = None,
        since: str | None = None,
    ) -> list[AccessRecord]:
        from secretguard.audit.logger import query_log

        rows = query_log(
            limit=limit or 50,
            event_type=event_type,
            identifier=identifier,
            caller=caller,
            outcome=outcome,
            since=since,
        )
        return [AccessRecord.from_dict(r) for r in reversed(rows)]

    def stats(self) -> dict:
        from secretguard.audit.logger import stats

        return stats()


def _parse_since(since: str | None) -> datetime | None:
    if not since:
        return None
    cutoff = datetime.fromisoformat(since)
    # Naive timestamps are taken as UTC, matching how records are written
    return cutoff if cutoff.tzinfo else cutoff.replace(tzinfo=UTC)
