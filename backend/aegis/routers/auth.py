"""Auth endpoints — register, login, 2FA, refresh, logout, deactivation.

The server only ever sees the client's derived credential (or a raw password
when CREDENTIAL_FORMAT=password); the vault key never leaves the client.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from aegis.dependencies import get_auth_service, get_client_meta, get_current_account
from aegis.models.account import Account, AccountRead
from aegis.models.auth import (
    DetailResponse,
    LoginRequest,
    PreSessionResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    SessionResponse,
    TwoFactorCodeRequest,
    TwoFactorEnrollmentResponse,
    TwoFactorLoginRequest,
)
from aegis.services.auth import AuthResult, AuthService
from aegis.services.tokens import ClientMeta

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _session_response(result: AuthResult) -> SessionResponse:
    return SessionResponse(
        account=AccountRead.model_validate(result.account),
        key_derivation_salt=result.key_derivation_salt,
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=result.tokens.expires_in,
    )


@router.post("/register", response_model=SessionResponse, status_code=201)
def register(
    body: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
    meta: ClientMeta = Depends(get_client_meta),
) -> SessionResponse:
    """Create an account and open its first session."""
    result = auth.register(
        body.email,
        body.credential,
        first_name=body.first_name,
        last_name=body.last_name,
        date_of_birth=body.date_of_birth,
        meta=meta,
    )
    return _session_response(result)


@router.post("/login", response_model=SessionResponse | PreSessionResponse)
def login(
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
    meta: ClientMeta = Depends(get_client_meta),
) -> SessionResponse | PreSessionResponse:
    """Verify the credential. Returns a pre-session token when 2FA is on."""
    result = auth.login(body.email, body.credential, meta)
    if isinstance(result, AuthResult):
        return _session_response(result)
    return PreSessionResponse(
        pre_session_token=result.pre_session_token,
        expires_in=result.expires_in,
    )


@router.post("/2fa/login", response_model=SessionResponse)
def two_factor_login(
    body: TwoFactorLoginRequest,
    auth: AuthService = Depends(get_auth_service),
    meta: ClientMeta = Depends(get_client_meta),
) -> SessionResponse:
    result = auth.complete_two_factor_login(body.pre_session_token, body.code, meta)
    return _session_response(result)


@router.post("/refresh", response_model=RefreshResponse)
def refresh(
    body: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
    meta: ClientMeta = Depends(get_client_meta),
) -> RefreshResponse:
    """Exchange a refresh token for a new pair. The old token is consumed."""
    result = auth.refresh(body.refresh_token, meta)
    return RefreshResponse(
        account=AccountRead.model_validate(result.account),
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=result.tokens.expires_in,
    )


@router.post("/logout", response_model=DetailResponse)
def logout(
    body: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
) -> DetailResponse:
    auth.logout(body.refresh_token)
    return DetailResponse(detail="Logged out")


@router.get("/me", response_model=AccountRead)
def me(account: Account = Depends(get_current_account)) -> AccountRead:
    return AccountRead.model_validate(account)


@router.delete("/me", response_model=DetailResponse)
def deactivate_account(
    account: Account = Depends(get_current_account),
    auth: AuthService = Depends(get_auth_service),
) -> DetailResponse:
    """Disable the caller's account and revoke all of its refresh sessions."""
    auth.deactivate(account.id)
    return DetailResponse(detail="Account deactivated")


# --- Second factor ---


@router.post("/2fa/enable", response_model=TwoFactorEnrollmentResponse)
def enable_two_factor(
    account: Account = Depends(get_current_account),
    auth: AuthService = Depends(get_auth_service),
) -> TwoFactorEnrollmentResponse:
    """Start enrollment. 2FA stays off until /2fa/confirm succeeds."""
    enrollment = auth.enable_two_factor(account.id)
    return TwoFactorEnrollmentResponse(
        secret=enrollment.secret,
        provisioning_uri=enrollment.provisioning_uri,
        qr_code=enrollment.qr_code,
    )


@router.post("/2fa/confirm", response_model=DetailResponse)
def confirm_two_factor(
    body: TwoFactorCodeRequest,
    account: Account = Depends(get_current_account),
    auth: AuthService = Depends(get_auth_service),
) -> DetailResponse:
    auth.confirm_two_factor(account.id, body.code)
    return DetailResponse(detail="Two-factor authentication enabled")


@router.post("/2fa/disable", response_model=DetailResponse)
def disable_two_factor(
    account: Account = Depends(get_current_account),
    auth: AuthService = Depends(get_auth_service),
) -> DetailResponse:
    auth.disable_two_factor(account.id)
    return DetailResponse(detail="Two-factor authentication disabled")
