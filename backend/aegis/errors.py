"""Error taxonomy shared by the auth and envelope services.

Every business error carries the HTTP status and the client-safe ``detail``
the router layer should return. ``ConfigurationError`` is deliberately not an
``AegisError``: it is raised at startup and is never mapped to a response.
"""

from __future__ import annotations


class AegisError(Exception):
    """Base class for recoverable, client-facing errors."""

    status_code: int = 400
    default_detail: str = "Bad request"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(AegisError):
    """Malformed input shape or format. The message is safe to reveal."""

    status_code = 422
    default_detail = "Invalid input"


class PayloadTooLargeError(AegisError):
    status_code = 413
    default_detail = "File too large"


class ConflictError(AegisError):
    status_code = 409
    default_detail = "Resource already exists"


class AuthenticationError(AegisError):
    """Generic authentication failure.

    Covers unknown account, wrong credential, bad 2FA code and
    invalid/expired/reused tokens. Callers must not put the sub-case in
    ``detail`` for email/credential pairs.
    """

    status_code = 401
    default_detail = "Invalid credentials"


class AccountDisabledError(AuthenticationError):
    status_code = 403
    default_detail = "Account is disabled"


class AuthorizationError(AegisError):
    status_code = 403
    default_detail = "Not allowed"


class NotFoundError(AegisError):
    status_code = 404
    default_detail = "Not found"


class DecryptionError(AegisError):
    """AEAD tag mismatch or malformed envelope."""

    status_code = 500
    default_detail = "File could not be decrypted"


class CredentialHashingError(AegisError):
    """The hash primitive itself failed (not a negative verification)."""

    status_code = 500
    default_detail = "Internal error"


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration detected while constructing a component."""
