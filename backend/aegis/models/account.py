"""Account table and its second-factor state.

The two-factor columns are only read and written through the
``second_factor`` variant so that "enabled without a secret" or
"disabled with a lingering secret" cannot be produced by service code.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel
from sqlmodel import Field, SQLModel


class TwoFactorState(str, Enum):
    DISABLED = "disabled"
    PENDING = "pending"
    ENABLED = "enabled"


@dataclass(frozen=True, slots=True)
class TwoFactorDisabled:
    pass


@dataclass(frozen=True, slots=True)
class TwoFactorPending:
    """Secret generated, waiting for the first correct code."""

    secret: str


@dataclass(frozen=True, slots=True)
class TwoFactorEnabled:
    secret: str


SecondFactor = TwoFactorDisabled | TwoFactorPending | TwoFactorEnabled


class Account(SQLModel, table=True):
    __tablename__ = "accounts"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    email: str = Field(index=True, unique=True)  # stripped + lower-cased
    credential_hash: str  # Argon2id PHC string
    key_derivation_salt: str  # base64 32 bytes, for client-side KDF only

    two_factor_state: TwoFactorState = Field(default=TwoFactorState.DISABLED)
    two_factor_secret: str | None = Field(default=None)  # Base32 TOTP secret

    is_active: bool = Field(default=True)

    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    date_of_birth: date | None = Field(default=None)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def second_factor(self) -> SecondFactor:
        if self.two_factor_state == TwoFactorState.ENABLED and self.two_factor_secret:
            return TwoFactorEnabled(self.two_factor_secret)
        if self.two_factor_state == TwoFactorState.PENDING and self.two_factor_secret:
            return TwoFactorPending(self.two_factor_secret)
        return TwoFactorDisabled()

    def set_second_factor(self, value: SecondFactor) -> None:
        if isinstance(value, TwoFactorEnabled):
            self.two_factor_state, self.two_factor_secret = TwoFactorState.ENABLED, value.secret
        elif isinstance(value, TwoFactorPending):
            self.two_factor_state, self.two_factor_secret = TwoFactorState.PENDING, value.secret
        else:
            self.two_factor_state, self.two_factor_secret = TwoFactorState.DISABLED, None
        self.touch()

    @property
    def second_factor_enabled(self) -> bool:
        return isinstance(self.second_factor, TwoFactorEnabled)

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)


# --- Pydantic schemas for request/response ---


class AccountRead(BaseModel):
    """Public view of an account. Never includes hashes, salts or secrets."""

    id: str
    email: str
    first_name: str | None
    last_name: str | None
    date_of_birth: date | None
    is_active: bool
    second_factor_enabled: bool
    created_at: datetime

    model_config = {"from_attributes": True}
