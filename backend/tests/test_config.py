"""Tests for backend/aegis/config.py — Settings validation."""
from __future__ import annotations

import os
import warnings
from unittest.mock import patch

import pytest

_SECRETS = {
    "JWT_ACCESS_SECRET": "access-secret-value",
    "JWT_REFRESH_SECRET": "refresh-secret-value",
    "JWT_PRE_SESSION_SECRET": "pre-session-secret-value",
    "ALLOW_INSECURE_JWT": "0",
}


class TestJwtSecretValidation:
    """Verify JWT secret enforcement in Settings."""

    @pytest.mark.parametrize(
        "name", ["JWT_ACCESS_SECRET", "JWT_REFRESH_SECRET", "JWT_PRE_SESSION_SECRET"]
    )
    def test_empty_secret_raises_without_escape_hatch(self, name):
        from aegis.config import Settings

        env = {**_SECRETS, name: ""}
        with patch.dict(os.environ, env, clear=False):
            with pytest.raises(ValueError, match=f"{name} is not set"):
                Settings(_env_file=None)

    def test_whitespace_secret_raises(self):
        from aegis.config import Settings

        env = {**_SECRETS, "JWT_ACCESS_SECRET": "   "}
        with patch.dict(os.environ, env, clear=False):
            with pytest.raises(ValueError, match="JWT_ACCESS_SECRET is not set"):
                Settings(_env_file=None)

    def test_allow_insecure_jwt_uses_ephemeral_secret(self):
        """ALLOW_INSECURE_JWT=1 downgrades the error to a warning."""
        from aegis.config import Settings

        env = {**_SECRETS, "JWT_REFRESH_SECRET": "", "ALLOW_INSECURE_JWT": "1"}
        with patch.dict(os.environ, env, clear=False):
            with warnings.catch_warnings(record=True) as w:
                warnings.simplefilter("always")
                s = Settings(_env_file=None)
            assert s.allow_insecure_jwt is True
            assert s.jwt_refresh_secret
            assert s.jwt_refresh_secret not in (s.jwt_access_secret, s.jwt_pre_session_secret)
            assert any("ALLOW_INSECURE_JWT" in str(warning.message) for warning in w)

    def test_shared_secrets_rejected(self):
        """The same secret for two token types would let one forge the other."""
        from aegis.config import Settings

        env = {**_SECRETS, "JWT_REFRESH_SECRET": _SECRETS["JWT_ACCESS_SECRET"]}
        with patch.dict(os.environ, env, clear=False):
            with pytest.raises(ValueError, match="must all differ"):
                Settings(_env_file=None)

    def test_secrets_whitespace_is_stripped(self):
        from aegis.config import Settings

        env = {**_SECRETS, "JWT_ACCESS_SECRET": "  my-secret  "}
        with patch.dict(os.environ, env, clear=False):
            s = Settings(_env_file=None)
            assert s.jwt_access_secret == "my-secret"


class TestDefaults:
    def test_token_lifetimes(self):
        from aegis.config import Settings

        with patch.dict(os.environ, _SECRETS, clear=False):
            s = Settings(_env_file=None)
        assert s.jwt_access_token_expire_minutes == 15
        assert s.jwt_refresh_token_expire_days == 7
        assert s.jwt_pre_session_expire_minutes == 5

    def test_credential_format_rejects_unknown_value(self):
        from aegis.config import Settings

        env = {**_SECRETS, "CREDENTIAL_FORMAT": "plaintext"}
        with patch.dict(os.environ, env, clear=False):
            with pytest.raises(ValueError):
                Settings(_env_file=None)

    def test_blob_dir_under_data_dir(self, tmp_path):
        from aegis.config import Settings

        env = {**_SECRETS, "DATA_DIR": str(tmp_path)}
        with patch.dict(os.environ, env, clear=False):
            s = Settings(_env_file=None)
        assert s.blob_dir == tmp_path / "blobs"
