"""Auth models and schemas.

Includes the SQLModel table for refresh-session tracking plus Pydantic
request/response schemas for the auth endpoints.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import uuid4

from pydantic import BaseModel
from sqlmodel import Field, SQLModel

from aegis.models.account import AccountRead


class RefreshSession(SQLModel, table=True):
    """One issued refresh token. Only its SHA-256 hash is persisted."""

    __tablename__ = "refresh_sessions"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)  # = JWT jti
    token_hash: str = Field(index=True, unique=True)  # SHA-256 of the raw token
    account_id: str = Field(index=True)  # lookup only, not an FK
    created_at: datetime
    expires_at: datetime
    revoked: bool = Field(default=False)
    # Advisory forensic metadata, never used for authorization
    issued_from_ip: str | None = Field(default=None, max_length=64)
    issued_from_agent: str | None = Field(default=None, max_length=512)


# --- Pydantic request/response schemas ---


class RegisterRequest(BaseModel):
    email: str
    credential: str  # client-derived auth hash (base64) or raw password
    first_name: str | None = None
    last_name: str | None = None
    date_of_birth: date | None = None


class LoginRequest(BaseModel):
    email: str
    credential: str


class TwoFactorLoginRequest(BaseModel):
    pre_session_token: str
    code: str


class TwoFactorCodeRequest(BaseModel):
    code: str


class RefreshRequest(BaseModel):
    refresh_token: str


class SessionResponse(BaseModel):
    """Full session: returned by register, login and 2FA login."""

    account: AccountRead
    key_derivation_salt: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # access token TTL in seconds


class PreSessionResponse(BaseModel):
    """Login succeeded on the credential but a 2FA code is still required."""

    two_factor_required: bool = True
    pre_session_token: str
    expires_in: int


class RefreshResponse(BaseModel):
    account: AccountRead
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class TwoFactorEnrollmentResponse(BaseModel):
    secret: str
    provisioning_uri: str
    qr_code: str  # data:image/png;base64,...


class DetailResponse(BaseModel):
    detail: str
