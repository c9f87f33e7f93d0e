"""Session token manager — access, refresh and pre-session JWTs.

Each token type is signed with its own secret, so leaking one secret does
not allow forging the other types. Only the SHA-256 hash of a refresh token
is stored. Rotation consumes the stored row with a single conditional
UPDATE: whichever caller flips ``revoked`` first wins, every other caller
sees ``rowcount == 0`` and is refused.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from jose import JWTError, jwt
from sqlalchemy import delete, or_, update
from sqlmodel import Session

from aegis.config import Settings
from aegis.errors import AuthenticationError, ConfigurationError
from aegis.models.account import Account
from aegis.models.auth import RefreshSession
from aegis.utils.crypto import sha256_hash

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"
PRE_SESSION = "pre_session"

_SUPPORTED_ALGORITHMS = {"HS256", "HS384", "HS512"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class TokenSettings:
    access_secret: str
    refresh_secret: str
    pre_session_secret: str
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    pre_session_ttl: timedelta = timedelta(minutes=5)
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        secrets = (self.access_secret, self.refresh_secret, self.pre_session_secret)
        if not all(s and s.strip() for s in secrets):
            raise ConfigurationError("All JWT signing secrets must be set")
        if len(set(secrets)) != len(secrets):
            raise ConfigurationError("JWT signing secrets must differ per token type")
        if self.algorithm not in _SUPPORTED_ALGORITHMS:
            raise ConfigurationError(f"Unsupported JWT algorithm: {self.algorithm!r}")
        for ttl in (self.access_ttl, self.refresh_ttl, self.pre_session_ttl):
            if ttl <= timedelta(0):
                raise ConfigurationError("Token lifetimes must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenSettings:
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            pre_session_secret=settings.jwt_pre_session_secret,
            access_ttl=timedelta(minutes=settings.jwt_access_token_expire_minutes),
            refresh_ttl=timedelta(days=settings.jwt_refresh_token_expire_days),
            pre_session_ttl=timedelta(minutes=settings.jwt_pre_session_expire_minutes),
        )


@dataclass(frozen=True, slots=True)
class ClientMeta:
    """Advisory request metadata recorded with a refresh session."""

    ip: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True, slots=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access token TTL in seconds


class TokenService:
    def __init__(self, config: TokenSettings) -> None:
        self._config = config

    @property
    def pre_session_expires_in(self) -> int:
        return int(self._config.pre_session_ttl.total_seconds())

    # --- JWT helpers ---

    def _encode(self, claims: dict, secret: str, ttl: timedelta) -> str:
        now = _utcnow()
        payload = {**claims, "iat": now, "exp": now + ttl}
        return jwt.encode(payload, secret, algorithm=self._config.algorithm)

    def _decode(self, token: str, secret: str, expected_type: str, detail: str) -> dict:
        try:
            payload = jwt.decode(token, secret, algorithms=[self._config.algorithm])
        except JWTError:
            raise AuthenticationError(detail)
        if payload.get("type") != expected_type or not payload.get("sub"):
            raise AuthenticationError(detail)
        return payload

    def create_access_token(self, account: Account) -> str:
        return self._encode(
            {"sub": account.id, "email": account.email, "type": ACCESS},
            self._config.access_secret,
            self._config.access_ttl,
        )

    def decode_access(self, token: str) -> dict:
        """Validate a bearer access token. Pre-session and refresh tokens fail."""
        return self._decode(token, self._config.access_secret, ACCESS, "Invalid or expired token")

    def issue_pre_session(self, account_id: str) -> str:
        """Short-lived token bridging "credential verified" to "2FA verified"."""
        return self._encode(
            {"sub": account_id, "type": PRE_SESSION},
            self._config.pre_session_secret,
            self._config.pre_session_ttl,
        )

    def decode_pre_session(self, token: str) -> str:
        """Return the account id carried by a valid pre-session token."""
        payload = self._decode(
            token,
            self._config.pre_session_secret,
            PRE_SESSION,
            "Invalid or expired two-factor session",
        )
        return payload["sub"]

    # --- Refresh sessions ---

    def issue(self, session: Session, account: Account, meta: ClientMeta | None = None) -> TokenPair:
        """Create access + refresh tokens and persist the refresh token hash.

        Commits the session, so any pending account changes are written in
        the same transaction.
        """
        meta = meta or ClientMeta()
        token_id = str(uuid4())
        refresh = self._encode(
            {"sub": account.id, "type": REFRESH, "jti": token_id},
            self._config.refresh_secret,
            self._config.refresh_ttl,
        )
        now = _utcnow()
        session.add(
            RefreshSession(
                id=token_id,
                token_hash=sha256_hash(refresh.encode("utf-8")),
                account_id=account.id,
                created_at=now,
                expires_at=now + self._config.refresh_ttl,
                issued_from_ip=meta.ip[:64] if meta.ip else None,
                issued_from_agent=meta.user_agent[:512] if meta.user_agent else None,
            )
        )
        session.commit()

        return TokenPair(
            access_token=self.create_access_token(account),
            refresh_token=refresh,
            expires_in=int(self._config.access_ttl.total_seconds()),
        )

    def rotate(
        self, session: Session, refresh_token: str, meta: ClientMeta | None = None
    ) -> tuple[Account, TokenPair]:
        """Exchange a refresh token for a new pair, consuming it.

        "Unknown", "already used", "expired" and "account gone" are
        indistinguishable to the caller.
        """
        refused = AuthenticationError("Invalid or expired refresh token")
        payload = self._decode(
            refresh_token, self._config.refresh_secret, REFRESH, refused.detail
        )
        token_id = payload.get("jti")
        if not token_id:
            raise refused

        result = session.exec(
            update(RefreshSession)
            .where(
                RefreshSession.id == token_id,
                RefreshSession.token_hash == sha256_hash(refresh_token.encode("utf-8")),
                RefreshSession.revoked == False,  # noqa: E712
                RefreshSession.expires_at > _utcnow(),
            )
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            # Signature was valid, so this token was issued by us: reuse of a
            # rotated token is a theft signal.
            logger.warning(
                "Refused refresh for account %s: session %s revoked, expired or unknown",
                payload["sub"],
                token_id,
            )
            raise refused

        account = session.get(Account, payload["sub"])
        if account is None or not account.is_active:
            session.commit()  # keep the consumed row revoked
            raise refused

        return account, self.issue(session, account, meta)

    def revoke(self, session: Session, refresh_token: str) -> None:
        """Revoke the matching refresh session if any. Idempotent, never raises."""
        session.exec(
            update(RefreshSession)
            .where(
                RefreshSession.token_hash == sha256_hash(refresh_token.encode("utf-8")),
                RefreshSession.revoked == False,  # noqa: E712
            )
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        session.commit()

    def revoke_all(self, session: Session, account_id: str) -> int:
        """Revoke every live refresh session of an account. Commits."""
        result = session.exec(
            update(RefreshSession)
            .where(
                RefreshSession.account_id == account_id,
                RefreshSession.revoked == False,  # noqa: E712
            )
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        return result.rowcount

    def purge_expired(self, session: Session) -> int:
        """Delete expired or revoked refresh sessions. Returns rows removed."""
        result = session.exec(
            delete(RefreshSession).where(
                or_(
                    RefreshSession.expires_at < _utcnow(),
                    RefreshSession.revoked == True,  # noqa: E712
                )
            ).execution_options(synchronize_session=False)
        )
        session.commit()
        return result.rowcount
