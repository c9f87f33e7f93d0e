"""TOTP (Time-based One-Time Password) second factor.

RFC 6238 compatible with Google Authenticator, Authy, Aegis:
6-digit codes, 30-second step, HMAC-SHA1, Base32 secret.

Per-account state moves DISABLED -> PENDING -> ENABLED and ENABLED ->
DISABLED. The helpers below only mutate the Account; persisting it is the
caller's job.
"""

from __future__ import annotations

import base64
import io
from datetime import datetime

import pyotp
import qrcode

from aegis.errors import AuthenticationError, ConflictError, ValidationError
from aegis.models.account import (
    Account,
    TwoFactorDisabled,
    TwoFactorEnabled,
    TwoFactorPending,
)

CODE_DIGITS = 6


def normalize_code(code: str) -> str:
    """Strip spaces and check the code is exactly 6 ASCII digits."""
    cleaned = (code or "").strip().replace(" ", "")
    if len(cleaned) != CODE_DIGITS or not (cleaned.isascii() and cleaned.isdigit()):
        raise ValidationError(f"code must be {CODE_DIGITS} digits")
    return cleaned


class TwoFactorService:
    def __init__(self, issuer: str = "Aegis", valid_window: int = 1) -> None:
        self.issuer = issuer
        self.valid_window = valid_window

    def generate_secret(self, account_label: str) -> tuple[str, str]:
        """Return (Base32 secret, otpauth:// provisioning URI). Persists nothing."""
        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret).provisioning_uri(name=account_label, issuer_name=self.issuer)
        return secret, uri

    @staticmethod
    def qr_code_data_url(provisioning_uri: str) -> str:
        """Render the provisioning URI as a PNG QR code data URL."""
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(provisioning_uri)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/png;base64,{encoded}"

    def verify_code(
        self,
        secret: str | None,
        code: str,
        valid_window: int | None = None,
        for_time: datetime | None = None,
    ) -> bool:
        """Check a 6-digit code, tolerating +/- valid_window steps of drift.

        Malformed codes are rejected before any time-window computation.
        """
        if not secret:
            return False
        try:
            cleaned = normalize_code(code)
        except ValidationError:
            return False

        window = self.valid_window if valid_window is None else valid_window
        try:
            return pyotp.TOTP(secret).verify(cleaned, for_time=for_time, valid_window=window)
        except ValueError:
            # undecodable Base32 secret
            return False

    # --- state transitions ---

    def begin_enrollment(self, account: Account) -> tuple[str, str]:
        """DISABLED/PENDING -> PENDING with a fresh secret."""
        if isinstance(account.second_factor, TwoFactorEnabled):
            raise ConflictError("Two-factor authentication is already enabled")
        secret, uri = self.generate_secret(account.email)
        account.set_second_factor(TwoFactorPending(secret))
        return secret, uri

    def confirm_enrollment(self, account: Account, code: str) -> None:
        """PENDING -> ENABLED on a correct code; a wrong code stays PENDING."""
        state = account.second_factor
        if not isinstance(state, TwoFactorPending):
            raise AuthenticationError("No pending two-factor enrollment")
        if not self.verify_code(state.secret, code):
            raise AuthenticationError("Invalid two-factor code")
        account.set_second_factor(TwoFactorEnabled(state.secret))

    @staticmethod
    def disable(account: Account) -> None:
        """Any state -> DISABLED. The secret is cleared, not kept."""
        account.set_second_factor(TwoFactorDisabled())
