from __future__ import annotations

import logging
import logging.config
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.router import router as api_router
from app.config import settings
from app.core.providers.aps_provider import APSClient
from app.db.blobs import build_blob_store
from app.db.store import StatusStore
from app.ingestion.gate import IngestionGate
from app.ingestion.pipeline import ConversionOrchestrator


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[type-arg]
    _configure_logging()
    logger = logging.getLogger(__name__)

    store = StatusStore()
    blobs = build_blob_store(settings)
    client = APSClient.from_settings(settings)
    orchestrator = ConversionOrchestrator(
        store,
        client,
        blobs,
        poll_interval=settings.poll_interval_seconds,
        max_poll_attempts=settings.max_poll_attempts,
        standard_delay=settings.standard_processing_delay_seconds,
        bucket_prefix=settings.aps_bucket_prefix,
    )
    app.state.store = store
    app.state.blobs = blobs
    app.state.translation_client = client
    app.state.orchestrator = orchestrator
    app.state.gate = IngestionGate(
        store, blobs, orchestrator, max_upload_bytes=settings.max_upload_bytes
    )

    logger.info(
        "Starting CAD file viewer API",
        extra={"env": settings.app_env, "blob_backend": settings.blob_backend},
    )
    yield
    logger.info("Shutting down CAD file viewer API")
    await orchestrator.shutdown()
    await client.aclose()


app = FastAPI(
    title="CAD File Viewer API",
    version="1.0.0",
    description="Upload, classify and convert files into viewable form",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/api/v1/health", tags=["health"])
async def health() -> dict[str, Any]:
    return {"status": "ok", "env": settings.app_env}
