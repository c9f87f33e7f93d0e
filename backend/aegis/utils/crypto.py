"""Low-level cryptographic primitives for Aegis.

Pure functions with no domain knowledge — reusable building blocks.
"""

from __future__ import annotations

import base64
import hashlib
import os
import secrets

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

AES_KEY_BYTES = 32
GCM_NONCE_BYTES = 12
GCM_TAG_BYTES = 16


def aes_gcm_encrypt(
    key: bytes, plaintext: bytes, aad: bytes | None = None
) -> tuple[bytes, bytes, bytes]:
    """Encrypt plaintext with AES-256-GCM under a fresh random nonce.

    Returns (nonce, tag, ciphertext). AESGCM appends the 16-byte tag to the
    ciphertext; it is split off so callers can frame the fields explicitly.
    """
    nonce = os.urandom(GCM_NONCE_BYTES)
    sealed = AESGCM(key).encrypt(nonce, plaintext, aad)
    return nonce, sealed[-GCM_TAG_BYTES:], sealed[:-GCM_TAG_BYTES]


def aes_gcm_decrypt(
    key: bytes, nonce: bytes, tag: bytes, ciphertext: bytes, aad: bytes | None = None
) -> bytes:
    """Decrypt fields produced by aes_gcm_encrypt.

    Raises cryptography.exceptions.InvalidTag on tampered data or wrong key.
    """
    return AESGCM(key).decrypt(nonce, ciphertext + tag, aad)


def random_b64(num_bytes: int = 32) -> str:
    """Return num_bytes from the OS CSPRNG, standard-base64 encoded."""
    return base64.b64encode(secrets.token_bytes(num_bytes)).decode("ascii")


def sha256_hash(data: bytes) -> str:
    """Compute SHA-256 hash. Returns hex-encoded digest."""
    return hashlib.sha256(data).hexdigest()
