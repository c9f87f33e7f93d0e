"""Blob store — flat filesystem storage for envelope bytes.

Blobs are addressed by a server-generated storage key
(``{uuid4 hex}{ext}``) and never by anything the client supplies.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from uuid import uuid4

from aegis.utils.formats import mime_to_extension

logger = logging.getLogger(__name__)


class BlobStore:
    _KEY_RE = re.compile(r"^[0-9a-f]{32}\.[a-z0-9]{1,8}$")

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _safe_path(self, storage_key: str) -> Path:
        """Resolve *storage_key* and verify it stays inside the store root.

        Raises:
            ValueError: If the key is malformed or escapes the root.
        """
        if not self._KEY_RE.match(storage_key):
            raise ValueError(f"Invalid storage key: {storage_key!r}")
        resolved = (self.root / storage_key).resolve()
        if resolved.parent != self.root:
            raise ValueError(f"Path traversal detected: {storage_key!r}")
        return resolved

    @staticmethod
    def new_key(mime_type: str) -> str:
        return f"{uuid4().hex}{mime_to_extension(mime_type)}"

    def write(self, storage_key: str, data: bytes) -> int:
        """Write a blob atomically. Returns the number of bytes stored."""
        path = self._safe_path(storage_key)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)
        return len(data)

    def read(self, storage_key: str) -> bytes:
        """Raises FileNotFoundError if the blob is missing."""
        return self._safe_path(storage_key).read_bytes()

    def delete(self, storage_key: str) -> None:
        logger.info("Deleting blob %s", storage_key)
        self._safe_path(storage_key).unlink(missing_ok=True)
