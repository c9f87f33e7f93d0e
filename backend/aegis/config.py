from __future__ import annotations

import secrets
import warnings
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # JWT signing secrets: one per token type, NEVER shared with clients
    jwt_access_secret: str = ""
    jwt_refresh_secret: str = ""
    jwt_pre_session_secret: str = ""
    allow_insecure_jwt: bool = False

    @model_validator(mode="after")
    def _check_jwt_secrets(self) -> Settings:
        for name in ("jwt_access_secret", "jwt_refresh_secret", "jwt_pre_session_secret"):
            value = getattr(self, name).strip()
            if not value:
                if not self.allow_insecure_jwt:
                    raise ValueError(
                        f"{name.upper()} is not set. An empty JWT secret allows attackers to "
                        "forge session tokens. Set it in .env (e.g. `openssl rand -hex 32`) "
                        "or set ALLOW_INSECURE_JWT=1 for development."
                    )
                warnings.warn(
                    f"{name.upper()} is empty but ALLOW_INSECURE_JWT is set, using an "
                    "ephemeral secret. Tokens will not survive a restart.",
                    stacklevel=2,
                )
                value = secrets.token_urlsafe(48)
            setattr(self, name, value)

        distinct = {self.jwt_access_secret, self.jwt_refresh_secret, self.jwt_pre_session_secret}
        if len(distinct) != 3:
            raise ValueError(
                "JWT_ACCESS_SECRET, JWT_REFRESH_SECRET and JWT_PRE_SESSION_SECRET must all "
                "differ, otherwise one token type can be forged from another."
            )
        return self

    # 64 hex chars (32 bytes), AES-256-GCM key for SERVER_MANAGED envelopes
    server_encryption_key: str = ""

    jwt_access_token_expire_minutes: int = 15
    jwt_refresh_token_expire_days: int = 7
    jwt_pre_session_expire_minutes: int = 5
    refresh_session_purge_interval_minutes: int = 60

    # Credential hashing (Argon2id)
    credential_format: Literal["auth_hash", "password"] = "auth_hash"
    password_min_length: int = 12
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536  # KiB (64 MiB)
    argon2_parallelism: int = 4

    # Second factor
    totp_issuer: str = "Aegis"
    totp_valid_window: int = 1  # accepted drift in 30s steps on each side

    data_dir: Path = Path("/app/data")
    db_url: str = "sqlite:////app/data/aegis.db"
    db_busy_timeout_ms: int = 5000
    max_upload_size_mb: int = 50

    @property
    def blob_dir(self) -> Path:
        return self.data_dir / "blobs"


@lru_cache
def get_settings() -> Settings:
    return Settings()
