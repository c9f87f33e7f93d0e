"""Tests for services/two_factor.py — TOTP secrets, codes and enrollment."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pyotp
import pytest

from aegis.errors import AuthenticationError, ConflictError, ValidationError
from aegis.models.account import (
    Account,
    TwoFactorDisabled,
    TwoFactorEnabled,
    TwoFactorPending,
    TwoFactorState,
)
from aegis.services.two_factor import TwoFactorService, normalize_code


def _account() -> Account:
    return Account(
        email="patient@example.com",
        credential_hash="$argon2id$placeholder",
        key_derivation_salt="c2FsdA==",
    )


class TestGenerateSecret:
    def test_secret_is_base32(self, two_factor: TwoFactorService) -> None:
        secret, _ = two_factor.generate_secret("patient@example.com")
        assert len(secret) >= 16
        assert set(secret) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZ234567")

    def test_provisioning_uri(self, two_factor: TwoFactorService) -> None:
        secret, uri = two_factor.generate_secret("patient@example.com")
        assert uri.startswith("otpauth://totp/")
        assert f"secret={secret}" in uri
        assert "issuer=Aegis%20Test" in uri

    def test_qr_code_is_png_data_url(self, two_factor: TwoFactorService) -> None:
        _, uri = two_factor.generate_secret("patient@example.com")
        assert two_factor.qr_code_data_url(uri).startswith("data:image/png;base64,")


class TestVerifyCode:
    def test_current_code_accepted(self, two_factor: TwoFactorService) -> None:
        secret = pyotp.random_base32()
        assert two_factor.verify_code(secret, pyotp.TOTP(secret).now()) is True

    def test_adjacent_step_accepted(self, two_factor: TwoFactorService) -> None:
        secret = pyotp.random_base32()
        now = datetime.now(timezone.utc)
        previous = pyotp.TOTP(secret).at(now - timedelta(seconds=30))
        assert two_factor.verify_code(secret, previous, for_time=now) is True

    def test_code_outside_window_rejected(self, two_factor: TwoFactorService) -> None:
        secret = pyotp.random_base32()
        now = datetime.now(timezone.utc)
        old = pyotp.TOTP(secret).at(now - timedelta(minutes=5))
        assert two_factor.verify_code(secret, old, valid_window=1, for_time=now) is False

    def test_zero_window_rejects_previous_step(self, two_factor: TwoFactorService) -> None:
        secret = pyotp.random_base32()
        now = datetime.now(timezone.utc)
        previous = pyotp.TOTP(secret).at(now - timedelta(seconds=30))
        assert two_factor.verify_code(secret, previous, valid_window=0, for_time=now) is False

    @pytest.mark.parametrize("code", ["", "12345", "1234567", "abcdef", "12 34"])
    def test_malformed_code_rejected(self, two_factor: TwoFactorService, code: str) -> None:
        assert two_factor.verify_code(pyotp.random_base32(), code) is False

    def test_missing_secret_rejected(self, two_factor: TwoFactorService) -> None:
        assert two_factor.verify_code(None, "123456") is False

    def test_garbage_secret_rejected(self, two_factor: TwoFactorService) -> None:
        assert two_factor.verify_code("not base32 !!", "123456") is False


class TestNormalizeCode:
    def test_strips_spaces(self) -> None:
        assert normalize_code(" 123 456 ") == "123456"

    def test_rejects_letters(self) -> None:
        with pytest.raises(ValidationError, match="6 digits"):
            normalize_code("12345a")


class TestEnrollment:
    def test_begin_sets_pending(self, two_factor: TwoFactorService) -> None:
        account = _account()
        secret, _ = two_factor.begin_enrollment(account)
        assert account.second_factor == TwoFactorPending(secret)
        assert account.second_factor_enabled is False

    def test_confirm_with_correct_code_enables(self, two_factor: TwoFactorService) -> None:
        account = _account()
        secret, _ = two_factor.begin_enrollment(account)
        two_factor.confirm_enrollment(account, pyotp.TOTP(secret).now())
        assert account.second_factor == TwoFactorEnabled(secret)
        assert account.two_factor_state == TwoFactorState.ENABLED

    def test_confirm_with_wrong_code_stays_pending(self, two_factor: TwoFactorService) -> None:
        account = _account()
        secret, _ = two_factor.begin_enrollment(account)
        now = datetime.now(timezone.utc)
        accepted = {pyotp.TOTP(secret).at(now, offset) for offset in (-1, 0, 1)}
        wrong = next(c for c in ("000000", "111111", "222222", "333333") if c not in accepted)
        with pytest.raises(AuthenticationError, match="Invalid two-factor code"):
            two_factor.confirm_enrollment(account, wrong)
        assert account.second_factor == TwoFactorPending(secret)

    def test_confirm_without_pending_fails(self, two_factor: TwoFactorService) -> None:
        with pytest.raises(AuthenticationError, match="No pending"):
            two_factor.confirm_enrollment(_account(), "123456")

    def test_begin_when_enabled_conflicts(self, two_factor: TwoFactorService) -> None:
        account = _account()
        account.set_second_factor(TwoFactorEnabled(pyotp.random_base32()))
        with pytest.raises(ConflictError):
            two_factor.begin_enrollment(account)

    def test_restart_enrollment_replaces_secret(self, two_factor: TwoFactorService) -> None:
        account = _account()
        first, _ = two_factor.begin_enrollment(account)
        second, _ = two_factor.begin_enrollment(account)
        assert first != second
        assert account.second_factor == TwoFactorPending(second)

    def test_disable_clears_secret(self, two_factor: TwoFactorService) -> None:
        account = _account()
        account.set_second_factor(TwoFactorEnabled(pyotp.random_base32()))
        two_factor.disable(account)
        assert account.second_factor == TwoFactorDisabled()
        assert account.two_factor_secret is None

    def test_old_secret_rejected_after_disable(self, two_factor: TwoFactorService) -> None:
        account = _account()
        secret, _ = two_factor.begin_enrollment(account)
        two_factor.confirm_enrollment(account, pyotp.TOTP(secret).now())
        two_factor.disable(account)
        with pytest.raises(AuthenticationError):
            two_factor.confirm_enrollment(account, pyotp.TOTP(secret).now())
        assert account.second_factor == TwoFactorDisabled()
