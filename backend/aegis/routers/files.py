"""File envelope API — upload, download, list and delete record attachments.

POST   /api/files                       — multipart upload
GET    /api/files/{envelope_id}         — download (plaintext or opaque blob)
GET    /api/files/record/{record_id}    — list envelopes of a record
DELETE /api/files/{envelope_id}         — delete envelope and blob
"""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from aegis.dependencies import get_current_account, get_file_service
from aegis.models.account import Account
from aegis.models.auth import DetailResponse
from aegis.models.envelope import FileEnvelopeRead
from aegis.services.files import FileService

router = APIRouter(prefix="/api/files", tags=["files"])


@router.post("", response_model=FileEnvelopeRead, status_code=201)
def upload_file(
    file: UploadFile = File(...),
    record_id: str = Form(...),
    is_encrypted: str | None = Form(None),
    mime_type: str | None = Form(None),
    plain_size: int | None = Form(None),
    display_name: str | None = Form(None),
    client_salt: str | None = Form(None),
    doctor_name: str | None = Form(None),
    account: Account = Depends(get_current_account),
    files: FileService = Depends(get_file_service),
) -> FileEnvelopeRead:
    """Attach a file to a record.

    ``is_encrypted`` selects the trust model: absent/false means the server
    encrypts the plaintext it receives, true means the bytes were encrypted
    by the client and are stored verbatim.
    """
    data = file.file.read()
    row = files.upload(
        account.id,
        record_id,
        data,
        mime_type or file.content_type or "application/octet-stream",
        is_encrypted=is_encrypted,
        plain_size=plain_size,
        display_name=display_name,
        upload_name=file.filename,
        client_salt=client_salt,
        doctor_name=doctor_name,
    )
    return FileEnvelopeRead.model_validate(row)


@router.get("/record/{record_id}", response_model=list[FileEnvelopeRead])
def list_files(
    record_id: str,
    account: Account = Depends(get_current_account),
    files: FileService = Depends(get_file_service),
) -> list[FileEnvelopeRead]:
    return [FileEnvelopeRead.model_validate(row) for row in files.list_for_record(account.id, record_id)]


@router.get("/{envelope_id}")
def download_file(
    envelope_id: str,
    account: Account = Depends(get_current_account),
    files: FileService = Depends(get_file_service),
) -> Response:
    """Serve the file. Client-encrypted files come back as the stored blob."""
    result = files.download(account.id, envelope_id)
    headers = {
        "Content-Disposition": f"attachment; filename*=UTF-8''{quote(result.filename)}",
        "X-Envelope-Mode": result.mode.value,
    }
    return Response(content=result.data, media_type=result.mime_type, headers=headers)


@router.delete("/{envelope_id}", response_model=DetailResponse)
def delete_file(
    envelope_id: str,
    account: Account = Depends(get_current_account),
    files: FileService = Depends(get_file_service),
) -> DetailResponse:
    files.delete(account.id, envelope_id)
    return DetailResponse(detail="File deleted")
