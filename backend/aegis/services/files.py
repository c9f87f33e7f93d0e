"""File envelope service — upload, download, list and delete.

Blob and metadata row are kept in lockstep: the blob is written first and
removed again if the row cannot be committed; on delete the row goes first
and the blob follows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlmodel import Session, select

from aegis.errors import (
    DecryptionError,
    NotFoundError,
    PayloadTooLargeError,
    ValidationError,
)
from aegis.models.envelope import EnvelopeMode, FileEnvelope
from aegis.models.record import MedicalRecord
from aegis.services.blob_store import BlobStore
from aegis.services.envelope import (
    EnvelopeCodec,
    ServerManagedEnvelope,
    parse_mode_flag,
)
from aegis.utils.formats import is_valid_mime_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DownloadedFile:
    data: bytes
    mime_type: str
    filename: str
    mode: EnvelopeMode


class FileService:
    def __init__(
        self,
        session: Session,
        codec: EnvelopeCodec,
        blob_store: BlobStore,
        max_upload_bytes: int | None = None,
    ) -> None:
        self.session = session
        self.codec = codec
        self.blob_store = blob_store
        self.max_upload_bytes = max_upload_bytes

    def _owned_record(self, account_id: str, record_id: str) -> MedicalRecord:
        record = self.session.exec(
            select(MedicalRecord).where(
                MedicalRecord.id == record_id,
                MedicalRecord.account_id == account_id,
            )
        ).first()
        if record is None:
            raise NotFoundError("Medical record not found")
        return record

    def _owned_envelope(self, account_id: str, envelope_id: str) -> FileEnvelope:
        envelope = self.session.exec(
            select(FileEnvelope).where(
                FileEnvelope.id == envelope_id,
                FileEnvelope.account_id == account_id,
            )
        ).first()
        if envelope is None:
            raise NotFoundError("File not found")
        return envelope

    def upload(
        self,
        account_id: str,
        record_id: str,
        data: bytes,
        mime_type: str,
        *,
        is_encrypted: Any = None,
        plain_size: int | None = None,
        display_name: str | None = None,
        upload_name: str | None = None,
        client_salt: str | None = None,
        doctor_name: str | None = None,
    ) -> FileEnvelope:
        """Store a file under the trust model selected by *is_encrypted*.

        For SERVER_MANAGED uploads the plaintext length is authoritative and
        *plain_size* is ignored. For CLIENT_OPAQUE uploads the server only sees
        ciphertext, so the client's *plain_size* is recorded (falling back to
        the blob length).

        *upload_name* is the multipart filename. It only stands in for a
        missing *display_name* in SERVER_MANAGED mode; a CLIENT_OPAQUE row
        keeps no name unless the client sent an encrypted one.
        """
        self._owned_record(account_id, record_id)
        mode = parse_mode_flag(is_encrypted)

        if not is_valid_mime_type(mime_type):
            raise ValidationError("Invalid MIME type")
        if self.max_upload_bytes is not None and len(data) > self.max_upload_bytes:
            raise PayloadTooLargeError(f"File exceeds {self.max_upload_bytes} bytes")
        if plain_size is not None and plain_size < 0:
            raise ValidationError("plain_size must be >= 0")

        envelope = self.codec.encode(data, mode)
        stored = envelope.to_bytes()

        if isinstance(envelope, ServerManagedEnvelope):
            mode_fields = {
                "cipher_nonce": envelope.nonce.hex(),
                "cipher_tag": envelope.tag.hex(),
                "display_name_plain": display_name if display_name is not None else upload_name,
                "plain_size": len(data),
            }
        else:
            mode_fields = {
                "display_name_cipher": display_name,
                "client_salt": client_salt,
                "plain_size": plain_size if plain_size is not None else len(data),
            }
        row = FileEnvelope(
            account_id=account_id,
            record_id=record_id,
            mode=mode,
            storage_key=self.blob_store.new_key(mime_type),
            mime_type=mime_type,
            cipher_size=len(stored),
            doctor_name=doctor_name,
            **mode_fields,
        )

        self.blob_store.write(row.storage_key, stored)
        try:
            self.session.add(row)
            self.session.commit()
        except Exception:
            self.session.rollback()
            self.blob_store.delete(row.storage_key)
            raise
        self.session.refresh(row)

        logger.info(
            "Stored %s envelope %s for record %s (%d -> %d bytes)",
            mode.value,
            row.id,
            record_id,
            row.plain_size,
            row.cipher_size,
        )
        return row

    def download(self, account_id: str, envelope_id: str) -> DownloadedFile:
        row = self._owned_envelope(account_id, envelope_id)
        try:
            stored = self.blob_store.read(row.storage_key)
        except FileNotFoundError:
            logger.error("Blob %s missing for envelope %s", row.storage_key, row.id)
            raise NotFoundError("File content not found")

        try:
            data = self.codec.payload(self.codec.parse(stored, row.mode))
        except DecryptionError:
            logger.error("Decryption failed for envelope %s", row.id)
            raise

        if row.mode == EnvelopeMode.SERVER_MANAGED:
            filename = row.display_name_plain or "decrypted-file"
        else:
            filename = row.display_name_cipher or "encrypted-file"
        return DownloadedFile(data=data, mime_type=row.mime_type, filename=filename, mode=row.mode)

    def list_for_record(self, account_id: str, record_id: str) -> list[FileEnvelope]:
        self._owned_record(account_id, record_id)
        return list(
            self.session.exec(
                select(FileEnvelope)
                .where(
                    FileEnvelope.record_id == record_id,
                    FileEnvelope.account_id == account_id,
                )
                .order_by(FileEnvelope.created_at.desc())
            ).all()
        )

    def delete(self, account_id: str, envelope_id: str) -> None:
        row = self._owned_envelope(account_id, envelope_id)
        storage_key = row.storage_key
        self.session.delete(row)
        self.session.commit()
        self.blob_store.delete(storage_key)
