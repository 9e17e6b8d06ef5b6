from __future__ import annotations

import asyncio
import itertools
import os
from collections.abc import AsyncIterator, Awaitable, Callable

# Settings() fails fast without APS credentials; give the test process some.
os.environ.setdefault("APS_CLIENT_ID", "test-client-id")
os.environ.setdefault("APS_CLIENT_SECRET", "test-client-secret")

import httpx  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport  # noqa: E402

from app.core.providers.base import (  # noqa: E402
    BaseTranslationClient,
    Bucket,
    Manifest,
    TranslationJob,
    UploadedObject,
    classify_manifest,
)
from app.db.blobs import LocalBlobStore  # noqa: E402
from app.db.store import StatusStore  # noqa: E402
from app.dependencies import (  # noqa: E402
    get_blob_store,
    get_gate,
    get_orchestrator,
    get_store,
    get_translation_client,
)
from app.ingestion.gate import IngestionGate  # noqa: E402
from app.ingestion.pipeline import ConversionOrchestrator  # noqa: E402
from app.main import app  # noqa: E402


class FakeTranslationClient(BaseTranslationClient):
    """Deterministic stand-in for the APS client.

    ``manifests`` is consumed one entry per poll; the last entry repeats.
    """

    def __init__(self, manifests: list[str] | None = None) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.buckets: dict[str, Bucket] = {}
        self.failures: dict[str, Exception] = {}
        self.on_manifest: Callable[[], Awaitable[None]] | None = None
        self._manifests = list(manifests or ["success"])

    def set_manifests(self, *raw_statuses: str) -> None:
        self._manifests = list(raw_statuses)

    def fail(self, method: str, exc: Exception) -> None:
        self.failures[method] = exc

    def calls_to(self, method: str) -> list[tuple[str, ...]]:
        return [c for c in self.calls if c[0] == method]

    def _record(self, method: str, *args: str) -> None:
        self.calls.append((method, *args))
        if method in self.failures:
            raise self.failures[method]

    async def authenticate(self) -> str:
        self._record("authenticate")
        return "fake-token"

    async def create_bucket(self, bucket_key: str) -> Bucket:
        self._record("create_bucket", bucket_key)
        return self.buckets.setdefault(bucket_key, Bucket(bucket_key=bucket_key, bucket_owner="fake"))

    async def upload_object(self, bucket_key: str, object_key: str, data: bytes) -> UploadedObject:
        self._record("upload_object", bucket_key, object_key)
        return UploadedObject(
            bucket_key=bucket_key,
            object_key=object_key,
            object_id=f"urn:adsk.objects:os.object:{bucket_key}/{object_key}",
            size=len(data),
        )

    async def submit_translation(self, urn: str) -> TranslationJob:
        self._record("submit_translation", urn)
        return TranslationJob(urn=urn, result="created")

    async def get_manifest(self, urn: str) -> Manifest:
        self._record("get_manifest", urn)
        if self.on_manifest is not None:
            await self.on_manifest()
        raw = self._manifests.pop(0) if len(self._manifests) > 1 else self._manifests[0]
        return Manifest(status=classify_manifest(raw), raw_status=raw, progress="complete")

    async def viewer_token(self) -> tuple[str, int]:
        self._record("viewer_token")
        return "fake-token", 3599


class RecordingSleep:
    """Replaces asyncio.sleep: records the requested delay and yields once."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.hook: Callable[[], Awaitable[None]] | None = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.hook is not None:
            await self.hook()
        await asyncio.sleep(0)


@pytest.fixture
def store() -> StatusStore:
    return StatusStore()


@pytest.fixture
def blobs(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "uploads")


@pytest.fixture
def fake_client() -> FakeTranslationClient:
    return FakeTranslationClient()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def orchestrator(store, fake_client, blobs, sleep) -> ConversionOrchestrator:
    counter = itertools.count(1)
    return ConversionOrchestrator(
        store,
        fake_client,
        blobs,
        poll_interval=10.0,
        max_poll_attempts=30,
        standard_delay=1.0,
        sleep=sleep,
        bucket_key_factory=lambda: f"autocad-viewer-{next(counter)}",
    )


@pytest.fixture
def gate(store, blobs, orchestrator) -> IngestionGate:
    return IngestionGate(store, blobs, orchestrator)


@pytest.fixture
async def api_client(store, blobs, fake_client, orchestrator, gate) -> AsyncIterator[httpx.AsyncClient]:
    """httpx client against the app with every component swapped for the test doubles."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_blob_store] = lambda: blobs
    app.dependency_overrides[get_translation_client] = lambda: fake_client
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_gate] = lambda: gate
    try:
        async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        await orchestrator.shutdown()
