"""FastAPI dependency injection for auth verification and the core services."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from aegis.config import get_settings
from aegis.db import get_session
from aegis.models.account import Account
from aegis.services.auth import AuthService
from aegis.services.blob_store import BlobStore
from aegis.services.credentials import CredentialHasher, HasherSettings
from aegis.services.envelope import EnvelopeCodec
from aegis.services.files import FileService
from aegis.services.tokens import ClientMeta, TokenService, TokenSettings
from aegis.services.two_factor import TwoFactorService

_bearer_scheme = HTTPBearer(auto_error=True)


# --- Process-wide singletons, built once from settings ---


@lru_cache
def get_credential_hasher() -> CredentialHasher:
    return CredentialHasher(HasherSettings.from_settings(get_settings()))


@lru_cache
def get_token_service() -> TokenService:
    return TokenService(TokenSettings.from_settings(get_settings()))


@lru_cache
def get_two_factor_service() -> TwoFactorService:
    settings = get_settings()
    return TwoFactorService(issuer=settings.totp_issuer, valid_window=settings.totp_valid_window)


@lru_cache
def get_envelope_codec() -> EnvelopeCodec:
    return EnvelopeCodec.from_hex(get_settings().server_encryption_key)


@lru_cache
def get_blob_store() -> BlobStore:
    return BlobStore(get_settings().blob_dir)


# --- Per-request services ---


def get_auth_service(
    session: Session = Depends(get_session),
    hasher: CredentialHasher = Depends(get_credential_hasher),
    tokens: TokenService = Depends(get_token_service),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> AuthService:
    settings = get_settings()
    return AuthService(
        session,
        hasher,
        tokens,
        two_factor,
        credential_format=settings.credential_format,
        password_min_length=settings.password_min_length,
    )


def get_file_service(
    session: Session = Depends(get_session),
    codec: EnvelopeCodec = Depends(get_envelope_codec),
    blob_store: BlobStore = Depends(get_blob_store),
) -> FileService:
    return FileService(
        session,
        codec,
        blob_store,
        max_upload_bytes=get_settings().max_upload_size_mb * 1024 * 1024,
    )


def get_client_meta(request: Request) -> ClientMeta:
    """Advisory client metadata. Never used for authorization."""
    return ClientMeta(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_current_account(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    auth: AuthService = Depends(get_auth_service),
) -> Account:
    """Validate the bearer access token and return its (active) account.

    Raises AuthenticationError (401) for a bad token and AuthorizationError
    (403) for a deactivated account.
    """
    return auth.authenticate_access_token(credentials.credentials)
