"""Tests for utils/formats.py — MIME type utilities."""

from __future__ import annotations

import pytest

from aegis.utils.formats import is_valid_mime_type, mime_to_extension


class TestMimeToExtension:
    @pytest.mark.parametrize(
        "mime,ext",
        [
            ("application/pdf", ".pdf"),
            ("image/jpeg", ".jpg"),
            ("application/dicom", ".dcm"),
            ("text/plain", ".txt"),
        ],
    )
    def test_known_types(self, mime: str, ext: str) -> None:
        assert mime_to_extension(mime) == ext

    def test_unknown_type_is_bin(self) -> None:
        assert mime_to_extension("application/x-made-up") == ".bin"


class TestIsValidMimeType:
    @pytest.mark.parametrize(
        "mime", ["application/pdf", "image/svg+xml", "application/vnd.ms-excel"]
    )
    def test_valid(self, mime: str) -> None:
        assert is_valid_mime_type(mime) is True

    @pytest.mark.parametrize("mime", ["", "pdf", "text/", "/plain", "text/plain; charset=utf-8", "a/" + "b" * 100])
    def test_invalid(self, mime: str) -> None:
        assert is_valid_mime_type(mime) is False
