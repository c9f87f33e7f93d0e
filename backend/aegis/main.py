from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

import aegis.models  # noqa: F401 — register SQLModel tables

from aegis.config import get_settings
from aegis.db import create_db_and_tables, engine
from aegis.dependencies import get_blob_store, get_envelope_codec, get_token_service
from aegis.errors import AegisError
from aegis.routers import auth, files, health, records

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # Fail fast on a bad server key or JWT configuration (ConfigurationError)
    get_envelope_codec()
    tokens = get_token_service()

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    get_blob_store()
    create_db_and_tables()

    def _purge() -> int:
        with Session(engine) as session:
            return tokens.purge_expired(session)

    # Periodic purge of expired and revoked refresh sessions
    async def _refresh_purge_loop() -> None:
        interval = settings.refresh_session_purge_interval_minutes * 60
        while True:
            await asyncio.sleep(interval)
            try:
                purged = await asyncio.to_thread(_purge)
                if purged:
                    logger.info("Refresh purge: removed %d session(s)", purged)
            except Exception:
                logger.exception("Refresh purge error")

    purge_task = asyncio.create_task(_refresh_purge_loop())

    yield

    # Shutdown: cancel refresh purge
    purge_task.cancel()
    try:
        await purge_task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    title="Aegis",
    description="Auth and file envelope backend for end-to-end encrypted medical records",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(AegisError)
async def aegis_error_handler(request: Request, exc: AegisError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(auth.router)
app.include_router(health.router)
app.include_router(records.router)
app.include_router(files.router)
