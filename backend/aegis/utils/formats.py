"""MIME type utilities for stored file envelopes."""

from __future__ import annotations

import re

# MIME → file extension
_MIME_TO_EXT: dict[str, str] = {
    # Documents
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    # Images
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/tiff": ".tiff",
    "application/dicom": ".dcm",
    # Text
    "text/plain": ".txt",
    "text/csv": ".csv",
    "application/json": ".json",
}

_MIME_RE = re.compile(r"^[\w.+-]+/[\w.+-]+$")


def mime_to_extension(mime_type: str) -> str:
    """Map a MIME type to a file extension (including the leading dot).

    Returns ".bin" for unknown MIME types.
    """
    return _MIME_TO_EXT.get(mime_type, ".bin")


def is_valid_mime_type(mime_type: str) -> bool:
    """Loose type/subtype syntax check, max 100 chars."""
    return bool(mime_type) and len(mime_type) <= 100 and bool(_MIME_RE.match(mime_type))
