"""File envelope metadata.

The encrypted (or client-opaque) bytes live in the blob store under
``storage_key``; this table only carries what is needed to list, serve and
delete them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel
from sqlmodel import Field, SQLModel


class EnvelopeMode(str, Enum):
    SERVER_MANAGED = "server_managed"  # server encrypts with its own key
    CLIENT_OPAQUE = "client_opaque"  # client-encrypted blob, server cannot decrypt


class FileEnvelope(SQLModel, table=True):
    __tablename__ = "file_envelopes"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    account_id: str = Field(foreign_key="accounts.id", index=True)
    record_id: str = Field(foreign_key="medical_records.id", index=True)
    mode: EnvelopeMode
    storage_key: str = Field(unique=True)  # "{uuid hex}{ext}" in the blob store

    # AES-GCM framing, server_managed only (hex)
    cipher_nonce: str | None = Field(default=None)
    cipher_tag: str | None = Field(default=None)

    # Exactly one is set, matching mode
    display_name_plain: str | None = Field(default=None, max_length=500)
    display_name_cipher: str | None = Field(default=None)

    client_salt: str | None = Field(default=None)  # client_opaque only
    doctor_name: str | None = Field(default=None, max_length=200)

    mime_type: str = Field(max_length=100)
    plain_size: int  # original bytes, for display
    cipher_size: int  # stored bytes, for storage accounting

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# --- Pydantic schemas for request/response ---


class FileEnvelopeRead(BaseModel):
    id: str
    record_id: str
    mode: EnvelopeMode
    display_name_plain: str | None
    display_name_cipher: str | None
    client_salt: str | None
    doctor_name: str | None
    mime_type: str
    plain_size: int
    cipher_size: int
    created_at: datetime

    model_config = {"from_attributes": True}
