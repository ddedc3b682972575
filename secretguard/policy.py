"""
Caller policy — who may acquire which secrets.

Identity is always explicit: the caller passes its name (and, where the policy
pins one, a token) on every acquire. Nothing is inferred from the call stack.
Tokens are stored only as SHA-256 digests and compared in constant time.

An empty policy denies everything.

Policy file (YAML):

    callers:
      - name: alice
      - name: signer-bot
        token_sha256: 9f86d08...
        identifiers: ["wallet*"]
    fingerprints:
      wallet1: 2bb80d5...
"""

from __future__ import annotations

import fnmatch
import hashlib
import hmac
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, ValidationError, field_validator

from secretguard.errors import PolicyError

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a caller token, as stored in the policy file."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CallerEntry:
    name: str
    token_sha256: str | None = None
    identifiers: tuple[str, ...] = ("*",)

    def covers(self, identifier: str) -> bool:
        return any(fnmatch.fnmatchcase(identifier, pattern) for pattern in self.identifiers)

    def token_matches(self, token: str | None) -> bool:
        if self.token_sha256 is None:
            return True
        if token is None:
            return False
        return hmac.compare_digest(hash_token(token), self.token_sha256)


@dataclass(frozen=True)
class CallerPolicy:
    """Immutable set of permitted callers. Reload by building a new one."""

    entries: Mapping[str, CallerEntry] = field(default_factory=dict)

    @classmethod
    def allow(cls, *names: str) -> CallerPolicy:
        """Policy permitting the named callers on every identifier, no tokens."""
        return cls.from_entries(CallerEntry(name=n) for n in names)

    @classmethod
    def from_entries(cls, entries: Iterable[CallerEntry]) -> CallerPolicy:
        return cls(entries={e.name: e for e in entries})

    @property
    def callers(self) -> frozenset[str]:
        return frozenset(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, caller: object) -> bool:
        return caller in self.entries

    def permits(self, caller: str, identifier: str, token: str | None = None) -> bool:
        entry = self.entries.get(caller)
        if entry is None:
            return False
        return entry.token_matches(token) and entry.covers(identifier)

    def denial_reason(self, caller: str, identifier: str, token: str | None = None) -> str:
        """Human-readable reason for a denial. Never echoes the token."""
        entry = self.entries.get(caller)
        if entry is None:
            return "caller not in policy"
        if not entry.token_matches(token):
            return "caller token missing or invalid"
        if not entry.covers(identifier):
            return "identifier outside caller scope"
        return "permitted"


# ─── Policy document ─────────────────────────────────────────────────


class CallerSpec(BaseModel):
    name: str = Field(min_length=1)
    token_sha256: str | None = None
    identifiers: list[str] = Field(default_factory=lambda: ["*"])

    @field_validator("token_sha256")
    @classmethod
    def _hex_digest(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip().lower()
        if len(v) != 64 or any(c not in "0123456789abcdef" for c in v):
            raise ValueError("token_sha256 must be a 64-character hex SHA-256 digest")
        return v


class PolicyDocument(BaseModel):
    callers: list[CallerSpec] = Field(default_factory=list)
    fingerprints: dict[str, str] = Field(default_factory=dict)

    @field_validator("fingerprints")
    @classmethod
    def _lower_fingerprints(cls, v: dict[str, str]) -> dict[str, str]:
        return {k: digest.strip().lower() for k, digest in v.items()}

    def caller_policy(self) -> CallerPolicy:
        return CallerPolicy.from_entries(
            CallerEntry(
                name=c.name,
                token_sha256=c.token_sha256,
                identifiers=tuple(c.identifiers),
            )
            for c in self.callers
        )


def load_policy_document(path: Path | str) -> PolicyDocument:
    """Load and validate a YAML policy file. A missing file means deny-all."""
    path = Path(path)
    if not path.exists():
        logger.warning("Policy file not found at %s; denying all callers", path)
        return PolicyDocument()
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise PolicyError(f"Cannot read policy file {path}: {e}") from e
    if not isinstance(raw, dict):
        raise PolicyError(f"Policy file {path} must be a mapping")
    try:
        doc = PolicyDocument.model_validate(raw)
    except ValidationError as e:
        raise PolicyError(f"Invalid policy file {path}: {e}") from e

    names = [c.name for c in doc.callers]
    if len(names) != len(set(names)):
        raise PolicyError(f"Policy file {path} lists a caller more than once")
    logger.info(
        "Loaded policy from %s: %d callers, %d fingerprints",
        path,
        len(doc.callers),
        len(doc.fingerprints),
    )
    return doc


def load_policy(path: Path | str) -> CallerPolicy:
    return load_policy_document(path).caller_policy()
