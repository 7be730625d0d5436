from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.connection import build_default_connection
from logging_config import configure_logging
from services.sync import build_default_sync_service


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    connection = build_default_connection()
    connection.open()
    build_default_sync_service()
    try:
        yield
    finally:
        connection.close()
        build_default_sync_service.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Telemetry History Sync",
        description="Incremental, rate-limited history sync for tank and valve telemetry.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
