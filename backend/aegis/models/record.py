from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel
from sqlmodel import Field, SQLModel


class RecordType(str, Enum):
    CONSULTATION = "consultation"
    PRESCRIPTION = "prescription"
    ANALYSIS = "analysis"
    IMAGING = "imaging"
    VACCINATION = "vaccination"
    HOSPITALISATION = "hospitalisation"
    OTHER = "other"


class MedicalRecord(SQLModel, table=True):
    """Container that file envelopes are attached to.

    The record body is a client-side encrypted blob; the server never
    decrypts it.
    """

    __tablename__ = "medical_records"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    account_id: str = Field(foreign_key="accounts.id", index=True)
    record_type: RecordType = Field(default=RecordType.OTHER)
    encrypted_data: str
    encrypted_title: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# --- Pydantic schemas for request/response ---


class MedicalRecordCreate(BaseModel):
    record_type: RecordType = RecordType.OTHER
    encrypted_data: str
    encrypted_title: str | None = None


class MedicalRecordRead(BaseModel):
    id: str
    record_type: RecordType
    encrypted_data: str
    encrypted_title: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
