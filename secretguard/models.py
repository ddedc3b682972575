"""
Data models for SecretGuard.

Plain dataclasses and StrEnums, no ORM. An AccessRecord never holds a payload
or a caller token, so it is always safe to log, serialise and ship.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    ACQUIRE = "secret.acquire"
    RELEASE = "secret.release"
    EXPIRE = "secret.expire"
    RESET = "auth.reset"


class Outcome(StrEnum):
    GRANTED = "granted"
    DENIED = "denied"
    RELEASED = "released"
    EXPIRED = "expired"
    RESET = "reset"
    FAILED = "failed"


class Reason(StrEnum):
    UNAUTHORIZED_CALLER = "unauthorized-caller"
    NOT_FOUND = "not-found"
    INTEGRITY_CHECK_FAILED = "integrity-check-failed"
    STORE_UNAVAILABLE = "store-unavailable"
    LOCK_TIMEOUT = "lock-timeout"
    INVALID_IDENTIFIER = "invalid-identifier"
    INVALID_LIFETIME = "invalid-lifetime"


class SecretState(StrEnum):
    ACTIVE = "active"
    RELEASED = "released"
    EXPIRED = "expired"


@dataclass(frozen=True)
class AccessRecord:
    """One append-only audit entry."""

    event_type: EventType
    identifier: str
    caller: str
    outcome: Outcome
    reason: Reason | None = None
    detail: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    record_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def denied(self) -> bool:
        return self.outcome in (Outcome.DENIED, Outcome.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": str(self.event_type),
            "identifier": self.identifier,
            "caller": self.caller,
            "outcome": str(self.outcome),
            "reason": str(self.reason) if self.reason else None,
            "detail": self.detail,
        }

    def to_json(self) -> str:
        """Single-line JSON (no embedded newlines), suitable for JSONL."""
        return json.dumps(self.to_dict(), separators=(",", ":"), sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccessRecord:
        reason = data.get("reason")
        return cls(
            event_type=EventType(data["event_type"]),
            identifier=data["identifier"],
            caller=data["caller"],
            outcome=Outcome(data["outcome"]),
            reason=Reason(reason) if reason else None,
            detail=data.get("detail") or "",
            timestamp=datetime.fromisoformat(data["timestamp"]),
            record_id=data["record_id"],
        )
