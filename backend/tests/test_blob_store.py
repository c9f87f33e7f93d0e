"""Tests for BlobStore — flat filesystem storage of envelope bytes."""

from __future__ import annotations

import re
from pathlib import Path

import pytest

from aegis.services.blob_store import BlobStore


class TestKeys:
    def test_new_key_uses_mime_extension(self) -> None:
        assert BlobStore.new_key("application/pdf").endswith(".pdf")
        assert BlobStore.new_key("application/x-unknown").endswith(".bin")

    def test_new_key_format(self) -> None:
        assert re.fullmatch(r"[0-9a-f]{32}\.[a-z]+", BlobStore.new_key("image/png"))

    def test_keys_are_unique(self) -> None:
        assert len({BlobStore.new_key("image/png") for _ in range(100)}) == 100


class TestReadWrite:
    def test_write_then_read(self, blob_store: BlobStore, blob_dir: Path) -> None:
        key = BlobStore.new_key("text/plain")
        assert blob_store.write(key, b"hello") == 5
        assert blob_store.read(key) == b"hello"
        assert (blob_dir / key).is_file()

    def test_no_tmp_file_left(self, blob_store: BlobStore, blob_dir: Path) -> None:
        blob_store.write(BlobStore.new_key("text/plain"), b"data")
        assert not list(blob_dir.glob("*.tmp"))

    def test_overwrite_replaces_content(self, blob_store: BlobStore, blob_dir: Path) -> None:
        key = BlobStore.new_key("application/pdf")
        blob_store.write(key, b"x" * 1000)
        blob_store.write(key, b"y" * 10)
        assert (blob_dir / key).stat().st_size == 10
        assert blob_store.read(key) == b"y" * 10

    def test_read_missing_raises(self, blob_store: BlobStore) -> None:
        with pytest.raises(FileNotFoundError):
            blob_store.read(BlobStore.new_key("image/png"))

    def test_delete(self, blob_store: BlobStore, blob_dir: Path) -> None:
        key = BlobStore.new_key("image/png")
        blob_store.write(key, b"png")
        blob_store.delete(key)
        assert not (blob_dir / key).exists()

    def test_delete_missing_is_noop(self, blob_store: BlobStore) -> None:
        blob_store.delete(BlobStore.new_key("image/png"))


class TestPathSafety:
    @pytest.mark.parametrize(
        "key",
        ["../etc/passwd", "..", "a/b.pdf", "/abs.pdf", "0" * 32 + ".PDF", "short.pdf", ""],
    )
    def test_rejects_bad_keys(self, blob_store: BlobStore, key: str) -> None:
        with pytest.raises(ValueError):
            blob_store.read(key)
        with pytest.raises(ValueError):
            blob_store.write(key, b"evil")
