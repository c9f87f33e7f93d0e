from __future__ import annotations

import base64
import os
import tempfile
from pathlib import Path

# Set test environment BEFORE importing aegis modules.
# aegis.db creates the engine at module level using get_settings().db_url,
# so we must override the env vars before any aegis imports.
_test_tmp = tempfile.mkdtemp(prefix="aegis-test-")
os.environ.setdefault("DATA_DIR", os.path.join(_test_tmp, "data"))
os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-for-integration-tests")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-for-integration-tests")
os.environ.setdefault("JWT_PRE_SESSION_SECRET", "test-pre-session-secret-for-integration-tests")
os.environ.setdefault("SERVER_ENCRYPTION_KEY", "5a" * 32)
# Cheap Argon2 parameters keep the suite fast
os.environ.setdefault("ARGON2_TIME_COST", "1")
os.environ.setdefault("ARGON2_MEMORY_COST", "1024")
os.environ.setdefault("ARGON2_PARALLELISM", "1")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import aegis.models  # noqa: F401
from aegis.db import get_session
from aegis.dependencies import get_blob_store
from aegis.main import app as fastapi_app
from aegis.services.auth import AuthService
from aegis.services.blob_store import BlobStore
from aegis.services.credentials import CredentialHasher, HasherSettings
from aegis.services.envelope import EnvelopeCodec
from aegis.services.files import FileService
from aegis.services.tokens import TokenService, TokenSettings
from aegis.services.two_factor import TwoFactorService


def make_auth_hash() -> str:
    """A well-formed client credential: base64 of 32 random bytes."""
    return base64.b64encode(os.urandom(32)).decode("ascii")


# ── Database fixtures ─────────────────────────────────────────────────


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite engine for testing.

    Uses StaticPool so every connection shares the same in-memory database.
    Recreates tables per test for full isolation.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    """Provide a fresh session per test."""
    with Session(engine) as session:
        yield session


# ── Service fixtures ──────────────────────────────────────────────────


@pytest.fixture(name="hasher")
def hasher_fixture() -> CredentialHasher:
    return CredentialHasher(HasherSettings(time_cost=1, memory_cost=1024, parallelism=1))


@pytest.fixture(name="token_settings")
def token_settings_fixture() -> TokenSettings:
    return TokenSettings(
        access_secret="unit-access-secret",
        refresh_secret="unit-refresh-secret",
        pre_session_secret="unit-pre-session-secret",
    )


@pytest.fixture(name="token_service")
def token_service_fixture(token_settings: TokenSettings) -> TokenService:
    return TokenService(token_settings)


@pytest.fixture(name="two_factor")
def two_factor_fixture() -> TwoFactorService:
    return TwoFactorService(issuer="Aegis Test")


@pytest.fixture(name="auth_service")
def auth_service_fixture(session, hasher, token_service, two_factor) -> AuthService:
    return AuthService(session, hasher, token_service, two_factor)


@pytest.fixture(name="server_key")
def server_key_fixture() -> bytes:
    return os.urandom(32)


@pytest.fixture(name="codec")
def codec_fixture(server_key: bytes) -> EnvelopeCodec:
    return EnvelopeCodec(server_key)


@pytest.fixture(name="blob_dir")
def blob_dir_fixture(tmp_path: Path) -> Path:
    return tmp_path / "blobs"


@pytest.fixture(name="blob_store")
def blob_store_fixture(blob_dir: Path) -> BlobStore:
    return BlobStore(blob_dir)


@pytest.fixture(name="file_service")
def file_service_fixture(session, codec, blob_store) -> FileService:
    return FileService(session, codec, blob_store, max_upload_bytes=5 * 1024 * 1024)


# ── HTTP client fixtures ──────────────────────────────────────────────


@pytest.fixture(name="client")
def client_fixture(session, blob_store):
    """FastAPI TestClient with overridden DB session and blob store."""

    def _get_session_override():
        yield session

    fastapi_app.dependency_overrides[get_session] = _get_session_override
    fastapi_app.dependency_overrides[get_blob_store] = lambda: blob_store
    with TestClient(fastapi_app) as client:
        yield client
    fastapi_app.dependency_overrides.clear()


@pytest.fixture(name="auth_client")
def auth_client_fixture(client):
    """TestClient with a freshly registered account and its bearer token.

    The credential, salt and refresh token are attached for assertions.
    """
    credential = make_auth_hash()
    resp = client.post(
        "/api/auth/register",
        json={"email": "patient@example.com", "credential": credential},
    )
    assert resp.status_code == 201
    data = resp.json()
    client.headers["Authorization"] = f"Bearer {data['access_token']}"
    client.credential = credential
    client.account_id = data["account"]["id"]
    client.refresh_token = data["refresh_token"]
    client.key_derivation_salt = data["key_derivation_salt"]
    return client
