"""Auth orchestrator — register, login, 2FA, refresh, logout.

Composes the credential hasher, the TOTP verifier and the token service into
the login state machine::

    START -> CREDENTIAL_CHECKED -> SESSION_ISSUED
                                -> TWOFACTOR_PENDING -> SESSION_ISSUED

For an email/credential pair, "no such account" and "wrong credential"
produce the same error with the same hashing cost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from aegis.errors import (
    AccountDisabledError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
)
from aegis.models.account import Account, TwoFactorEnabled
from aegis.services.credentials import (
    CredentialHasher,
    issue_salt,
    normalize_email,
    validate_credential,
)
from aegis.services.tokens import ClientMeta, TokenPair, TokenService
from aegis.services.two_factor import TwoFactorService, normalize_code

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuthResult:
    """Full session. The salt lets the client re-derive its vault key."""

    account: Account
    key_derivation_salt: str
    tokens: TokenPair


@dataclass(frozen=True, slots=True)
class PreSessionResult:
    pre_session_token: str
    expires_in: int


@dataclass(frozen=True, slots=True)
class RefreshResult:
    account: Account
    tokens: TokenPair


@dataclass(frozen=True, slots=True)
class TwoFactorEnrollment:
    secret: str
    provisioning_uri: str
    qr_code: str


class AuthService:
    def __init__(
        self,
        session: Session,
        hasher: CredentialHasher,
        tokens: TokenService,
        two_factor: TwoFactorService,
        *,
        credential_format: str = "auth_hash",
        password_min_length: int = 12,
    ) -> None:
        self.session = session
        self.hasher = hasher
        self.tokens = tokens
        self.two_factor = two_factor
        self.credential_format = credential_format
        self.password_min_length = password_min_length

    def _validate_credential(self, credential: str) -> str:
        return validate_credential(credential, self.credential_format, self.password_min_length)

    def _find_by_email(self, email: str) -> Account | None:
        return self.session.exec(select(Account).where(Account.email == email)).first()

    def _get_account(self, account_id: str) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AuthenticationError("Unknown account")
        return account

    def _full_session(self, account: Account, meta: ClientMeta | None) -> AuthResult:
        tokens = self.tokens.issue(self.session, account, meta)
        return AuthResult(
            account=account,
            key_derivation_salt=account.key_derivation_salt,
            tokens=tokens,
        )

    # --- Registration & login ---

    def register(
        self,
        email: str,
        credential: str,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
        date_of_birth: date | None = None,
        meta: ClientMeta | None = None,
    ) -> AuthResult:
        email = normalize_email(email)
        credential = self._validate_credential(credential)
        if self._find_by_email(email) is not None:
            raise ConflictError("An account with this email already exists")

        account = Account(
            email=email,
            credential_hash=self.hasher.hash(credential),
            key_derivation_salt=issue_salt(),
            first_name=first_name,
            last_name=last_name,
            date_of_birth=date_of_birth,
        )
        self.session.add(account)
        try:
            result = self._full_session(account, meta)
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            self.session.rollback()
            raise ConflictError("An account with this email already exists")

        logger.info("Registered account %s", account.id)
        return result

    def login(
        self, email: str, credential: str, meta: ClientMeta | None = None
    ) -> AuthResult | PreSessionResult:
        email = normalize_email(email)
        credential = self._validate_credential(credential)

        account = self._find_by_email(email)
        if account is None:
            self.hasher.dummy_verify(credential)
            raise AuthenticationError()
        if not self.hasher.verify(account.credential_hash, credential):
            logger.info("Failed login for account %s", account.id)
            raise AuthenticationError()
        if not account.is_active:
            raise AccountDisabledError()

        if self.hasher.needs_rehash(account.credential_hash):
            account.credential_hash = self.hasher.hash(credential)
            account.touch()
            self.session.add(account)

        if account.second_factor_enabled:
            self.session.commit()
            return PreSessionResult(
                pre_session_token=self.tokens.issue_pre_session(account.id),
                expires_in=self.tokens.pre_session_expires_in,
            )
        return self._full_session(account, meta)

    def complete_two_factor_login(
        self, pre_session_token: str, code: str, meta: ClientMeta | None = None
    ) -> AuthResult:
        """Second step of a 2FA login. A wrong code can be retried until the
        pre-session token expires."""
        account_id = self.tokens.decode_pre_session(pre_session_token)
        code = normalize_code(code)

        account = self.session.get(Account, account_id)
        if account is None:
            raise AuthenticationError("Invalid or expired two-factor session")
        if not account.is_active:
            raise AccountDisabledError()
        state = account.second_factor
        if not isinstance(state, TwoFactorEnabled) or not self.two_factor.verify_code(
            state.secret, code
        ):
            raise AuthenticationError("Invalid two-factor code")
        return self._full_session(account, meta)

    # --- Session lifecycle ---

    def refresh(self, refresh_token: str, meta: ClientMeta | None = None) -> RefreshResult:
        account, tokens = self.tokens.rotate(self.session, refresh_token, meta)
        return RefreshResult(account=account, tokens=tokens)

    def logout(self, refresh_token: str) -> None:
        self.tokens.revoke(self.session, refresh_token)

    def authenticate_access_token(self, access_token: str) -> Account:
        """Resolve a bearer access token to its account, re-reading the DB."""
        payload = self.tokens.decode_access(access_token)
        account = self.session.get(Account, payload["sub"])
        if account is None:
            raise AuthenticationError("Invalid or expired token")
        if not account.is_active:
            raise AuthorizationError("Account is disabled")
        return account

    def deactivate(self, account_id: str) -> None:
        """Soft-disable an account and revoke all of its refresh sessions."""
        account = self._get_account(account_id)
        account.is_active = False
        account.touch()
        self.session.add(account)
        self.tokens.revoke_all(self.session, account.id)
        logger.info("Deactivated account %s", account.id)

    # --- Second factor ---

    def enable_two_factor(self, account_id: str) -> TwoFactorEnrollment:
        account = self._get_account(account_id)
        secret, uri = self.two_factor.begin_enrollment(account)
        self.session.add(account)
        self.session.commit()
        return TwoFactorEnrollment(
            secret=secret,
            provisioning_uri=uri,
            qr_code=self.two_factor.qr_code_data_url(uri),
        )

    def confirm_two_factor(self, account_id: str, code: str) -> None:
        account = self._get_account(account_id)
        self.two_factor.confirm_enrollment(account, normalize_code(code))
        self.session.add(account)
        self.session.commit()
        logger.info("Two-factor enabled for account %s", account.id)

    def disable_two_factor(self, account_id: str) -> None:
        account = self._get_account(account_id)
        self.two_factor.disable(account)
        self.session.add(account)
        self.session.commit()
        logger.info("Two-factor disabled for account %s", account.id)
