"""Credential hashing and key-derivation salt issuance.

Two salts exist and must never be confused:

* the Argon2 salt, generated per ``hash()`` call and embedded in the PHC
  string; it never leaves this module;
* the key-derivation salt handed to the client so it can re-derive its local
  vault key. The server stores it but never derives anything from it.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import secrets
from dataclasses import dataclass

from argon2 import PasswordHasher, Type
from argon2.exceptions import HashingError, InvalidHashError, VerificationError

from aegis.config import Settings
from aegis.errors import CredentialHashingError, ValidationError
from aegis.utils.crypto import random_b64

logger = logging.getLogger(__name__)

KEY_DERIVATION_SALT_BYTES = 32
AUTH_HASH_LENGTH = 44  # base64 of a 32-byte client-side digest

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True, slots=True)
class HasherSettings:
    time_cost: int = 3
    memory_cost: int = 65536  # KiB
    parallelism: int = 4
    hash_len: int = 32
    salt_len: int = 16

    @classmethod
    def from_settings(cls, settings: Settings) -> HasherSettings:
        return cls(
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost,
            parallelism=settings.argon2_parallelism,
        )


class CredentialHasher:
    """Argon2id hashing of the value presented at login."""

    def __init__(self, params: HasherSettings | None = None) -> None:
        params = params or HasherSettings()
        self._hasher = PasswordHasher(
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=params.hash_len,
            salt_len=params.salt_len,
            type=Type.ID,
        )
        # Verified against when the account does not exist, so unknown-email
        # and wrong-credential attempts cost the same.
        self._decoy_hash = self._hasher.hash(secrets.token_urlsafe(32))

    def hash(self, secret: str) -> str:
        try:
            return self._hasher.hash(secret)
        except HashingError:
            logger.exception("Argon2 hashing failed")
            raise CredentialHashingError()

    def verify(self, stored_hash: str, secret: str) -> bool:
        """Return True iff *secret* matches *stored_hash*.

        A malformed stored hash is a plain negative result, never an error.
        """
        try:
            return self._hasher.verify(stored_hash, secret)
        except (VerificationError, InvalidHashError):
            return False

    def dummy_verify(self, secret: str) -> bool:
        self.verify(self._decoy_hash, secret)
        return False

    def needs_rehash(self, stored_hash: str) -> bool:
        try:
            return self._hasher.check_needs_rehash(stored_hash)
        except InvalidHashError:
            return True


def issue_salt() -> str:
    """Fresh 256-bit key-derivation salt for a new account (base64)."""
    return random_b64(KEY_DERIVATION_SALT_BYTES)


def normalize_email(email: str) -> str:
    normalized = (email or "").strip().lower()
    if len(normalized) > 255 or not _EMAIL_RE.match(normalized):
        raise ValidationError("Invalid email address")
    return normalized


def validate_credential(credential: str, credential_format: str, min_length: int = 12) -> str:
    """Check the shape of a presented credential before it is hashed.

    ``auth_hash``: the client's pre-hashed value, 44 base64 chars / 32 bytes.
    ``password``: a raw password of at least *min_length* characters.
    """
    if not isinstance(credential, str):
        raise ValidationError("Credential must be a string")

    if credential_format == "password":
        if len(credential) < min_length:
            raise ValidationError(f"Password must be at least {min_length} characters")
        return credential

    if len(credential) != AUTH_HASH_LENGTH or not _BASE64_RE.match(credential):
        raise ValidationError(
            f"Credential must be exactly {AUTH_HASH_LENGTH} characters of base64"
        )
    try:
        decoded = base64.b64decode(credential, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Credential must be valid base64")
    if len(decoded) != 32:
        raise ValidationError("Credential must decode to 32 bytes")
    return credential
