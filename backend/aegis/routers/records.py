"""Medical record containers.

POST /api/records           — create a container for file envelopes
GET  /api/records/{id}      — fetch one owned record

The record body is encrypted client-side and stored as-is.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from aegis.db import get_session
from aegis.dependencies import get_current_account
from aegis.errors import NotFoundError
from aegis.models.account import Account
from aegis.models.record import MedicalRecord, MedicalRecordCreate, MedicalRecordRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/records", tags=["records"])


@router.post("", response_model=MedicalRecordRead, status_code=201)
def create_record(
    body: MedicalRecordCreate,
    account: Account = Depends(get_current_account),
    session: Session = Depends(get_session),
) -> MedicalRecordRead:
    record = MedicalRecord(
        account_id=account.id,
        record_type=body.record_type,
        encrypted_data=body.encrypted_data,
        encrypted_title=body.encrypted_title,
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    logger.info("Created record %s for account %s", record.id, account.id)
    return MedicalRecordRead.model_validate(record)


@router.get("/{record_id}", response_model=MedicalRecordRead)
def get_record(
    record_id: str,
    account: Account = Depends(get_current_account),
    session: Session = Depends(get_session),
) -> MedicalRecordRead:
    record = session.exec(
        select(MedicalRecord).where(
            MedicalRecord.id == record_id,
            MedicalRecord.account_id == account.id,
        )
    ).first()
    if record is None:
        raise NotFoundError("Medical record not found")
    return MedicalRecordRead.model_validate(record)
