"""Vault data models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class VaultEntry(BaseModel):
    """A vault secret entry (metadata only — never includes the decrypted value)."""

    service_id: str
    identifier: str
    metadata: dict = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
