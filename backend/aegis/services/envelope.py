"""File envelope codec for Aegis.

An uploaded file is stored under exactly one of two trust models:

* SERVER_MANAGED — the server receives plaintext and seals it with AES-256-GCM
  under its single server-wide key. It can decrypt on download.
* CLIENT_OPAQUE — the client encrypted the file before upload. The bytes are
  stored verbatim and the server holds nothing that could decrypt them.

On-disk SERVER_MANAGED format (fixed)::

    b"AEG1" || nonce (12 bytes) || tag (16 bytes) || ciphertext
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidTag

from aegis.errors import ConfigurationError, DecryptionError, ValidationError
from aegis.models.envelope import EnvelopeMode
from aegis.utils.crypto import (
    AES_KEY_BYTES,
    GCM_NONCE_BYTES,
    GCM_TAG_BYTES,
    aes_gcm_decrypt,
    aes_gcm_encrypt,
)

MAGIC = b"AEG1"
_HEADER_BYTES = len(MAGIC) + GCM_NONCE_BYTES + GCM_TAG_BYTES

# The upload flag is "is the file already encrypted by the client?".
# Its declared default is False, so an absent flag means SERVER_MANAGED.
_MODE_FLAG_TABLE: dict[Any, EnvelopeMode] = {
    None: EnvelopeMode.SERVER_MANAGED,
    False: EnvelopeMode.SERVER_MANAGED,
    True: EnvelopeMode.CLIENT_OPAQUE,
    "": EnvelopeMode.SERVER_MANAGED,
    "0": EnvelopeMode.SERVER_MANAGED,
    "false": EnvelopeMode.SERVER_MANAGED,
    "no": EnvelopeMode.SERVER_MANAGED,
    "off": EnvelopeMode.SERVER_MANAGED,
    "1": EnvelopeMode.CLIENT_OPAQUE,
    "true": EnvelopeMode.CLIENT_OPAQUE,
    "yes": EnvelopeMode.CLIENT_OPAQUE,
    "on": EnvelopeMode.CLIENT_OPAQUE,
}


def parse_mode_flag(raw: Any) -> EnvelopeMode:
    """Map the heterogeneous ``is_encrypted`` wire value to an EnvelopeMode.

    Accepts booleans, 0/1 and their common string spellings. Anything else
    is rejected rather than guessed.
    """
    if isinstance(raw, EnvelopeMode):
        return raw
    if isinstance(raw, bool) or raw is None:
        return _MODE_FLAG_TABLE[raw]
    if isinstance(raw, int):
        key: Any = str(raw)
    elif isinstance(raw, str):
        key = raw.strip().lower()
    else:
        raise ValidationError("is_encrypted must be a boolean")
    try:
        return _MODE_FLAG_TABLE[key]
    except KeyError:
        raise ValidationError("is_encrypted must be a boolean")


@dataclass(frozen=True, slots=True)
class ServerManagedEnvelope:
    nonce: bytes
    tag: bytes
    ciphertext: bytes

    @property
    def mode(self) -> EnvelopeMode:
        return EnvelopeMode.SERVER_MANAGED

    def to_bytes(self) -> bytes:
        return MAGIC + self.nonce + self.tag + self.ciphertext


@dataclass(frozen=True, slots=True)
class ClientOpaqueEnvelope:
    blob: bytes

    @property
    def mode(self) -> EnvelopeMode:
        return EnvelopeMode.CLIENT_OPAQUE

    def to_bytes(self) -> bytes:
        return self.blob


Envelope = ServerManagedEnvelope | ClientOpaqueEnvelope


class EnvelopeCodec:
    """Encode/decode stored file envelopes with the server-wide key."""

    __slots__ = ("_key",)

    def __init__(self, server_key: bytes) -> None:
        if not isinstance(server_key, (bytes, bytearray)) or len(server_key) != AES_KEY_BYTES:
            raise ConfigurationError(
                f"Server encryption key must be exactly {AES_KEY_BYTES} bytes"
            )
        self._key = bytes(server_key)

    @classmethod
    def from_hex(cls, key_hex: str) -> EnvelopeCodec:
        """Build from the SERVER_ENCRYPTION_KEY setting (64 hex chars)."""
        key_hex = (key_hex or "").strip()
        if len(key_hex) != AES_KEY_BYTES * 2:
            raise ConfigurationError(
                f"SERVER_ENCRYPTION_KEY must be {AES_KEY_BYTES * 2} hex characters"
            )
        try:
            return cls(bytes.fromhex(key_hex))
        except ValueError:
            raise ConfigurationError("SERVER_ENCRYPTION_KEY is not valid hex")

    def encode(self, data: bytes, mode: EnvelopeMode) -> Envelope:
        if mode == EnvelopeMode.CLIENT_OPAQUE:
            return ClientOpaqueEnvelope(bytes(data))
        nonce, tag, ciphertext = aes_gcm_encrypt(self._key, bytes(data))
        return ServerManagedEnvelope(nonce=nonce, tag=tag, ciphertext=ciphertext)

    @staticmethod
    def parse(stored: bytes, mode: EnvelopeMode) -> Envelope:
        """Rebuild an envelope from its on-disk bytes."""
        if mode == EnvelopeMode.CLIENT_OPAQUE:
            return ClientOpaqueEnvelope(stored)
        if len(stored) < _HEADER_BYTES or not stored.startswith(MAGIC):
            raise DecryptionError("Malformed server-managed envelope")
        nonce_end = len(MAGIC) + GCM_NONCE_BYTES
        return ServerManagedEnvelope(
            nonce=stored[len(MAGIC):nonce_end],
            tag=stored[nonce_end:_HEADER_BYTES],
            ciphertext=stored[_HEADER_BYTES:],
        )

    def decode(self, envelope: Envelope) -> bytes:
        """Decrypt a SERVER_MANAGED envelope.

        Raises DecryptionError on tag mismatch, bad framing, or when asked to
        decode a CLIENT_OPAQUE envelope.
        """
        if not isinstance(envelope, ServerManagedEnvelope):
            raise DecryptionError("Client-encrypted files cannot be decrypted by the server")
        if len(envelope.nonce) != GCM_NONCE_BYTES or len(envelope.tag) != GCM_TAG_BYTES:
            raise DecryptionError("Malformed server-managed envelope")
        try:
            return aes_gcm_decrypt(self._key, envelope.nonce, envelope.tag, envelope.ciphertext)
        except InvalidTag:
            raise DecryptionError()

    def payload(self, envelope: Envelope) -> bytes:
        """Bytes a download serves: plaintext, or the opaque blob unchanged."""
        if isinstance(envelope, ClientOpaqueEnvelope):
            return envelope.blob
        return self.decode(envelope)
