from __future__ import annotations

from fastapi import Request

from app.core.providers.base import BaseTranslationClient
from app.db.blobs import BlobStore
from app.db.store import StatusStore
from app.ingestion.gate import IngestionGate
from app.ingestion.pipeline import ConversionOrchestrator

# Components are built once in the app lifespan and hung off app.state.
# Tests swap them out via app.dependency_overrides.


def get_store(request: Request) -> StatusStore:
    return request.app.state.store


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blobs


def get_translation_client(request: Request) -> BaseTranslationClient:
    return request.app.state.translation_client


def get_orchestrator(request: Request) -> ConversionOrchestrator:
    return request.app.state.orchestrator


def get_gate(request: Request) -> IngestionGate:
    return request.app.state.gate
