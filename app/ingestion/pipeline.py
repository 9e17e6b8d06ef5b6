from __future__ import annotations

import asyncio
import functools
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from app.core.errors import (
    InvalidTransition,
    NotFoundError,
    PipelineError,
    TranslationFailedError,
    TranslationTimeoutError,
    UpstreamError,
)
from app.core.providers.base import BaseTranslationClient, Manifest, ManifestStatus, encode_urn
from app.db.blobs import BlobStore
from app.db.models import FileRecord, apply_transition
from app.db.store import StatusStore
from app.schemas.file import (
    APSViewerMetadata,
    FileMetadata,
    FileStatus,
    FileType,
    StandardViewerMetadata,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class _RecordDeleted(Exception):
    """The record was removed while its pipeline was still running."""


@dataclass
class ConversionJob:
    """Remote state for a single orchestrator run. Never persisted."""

    file_id: uuid.UUID
    bucket_key: str
    object_key: str
    max_attempts: int
    object_id: str | None = None
    urn: str | None = None
    attempt_count: int = 0


def _timestamped_bucket_key(prefix: str) -> str:
    return f"{prefix}-{time.time_ns() // 1_000_000}"


class ConversionOrchestrator:
    """Runs one asyncio task per file, moving its record to READY or ERROR.

    Non-CAD files take a short local path. AutoCAD files go through the
    remote translation service: bucket → upload → translate → poll manifest.
    Every write goes through ``StatusStore.update`` so a record deleted
    mid-run is never recreated; the run just stops writing.
    """

    def __init__(
        self,
        store: StatusStore,
        client: BaseTranslationClient,
        blobs: BlobStore,
        *,
        poll_interval: float = 10.0,
        max_poll_attempts: int = 30,
        standard_delay: float = 1.0,
        bucket_prefix: str = "autocad-viewer",
        sleep: Sleep = asyncio.sleep,
        bucket_key_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._blobs = blobs
        self._poll_interval = poll_interval
        self._max_poll_attempts = max_poll_attempts
        self._standard_delay = standard_delay
        self._sleep = sleep
        self._bucket_key_factory = bucket_key_factory or functools.partial(
            _timestamped_bucket_key, bucket_prefix
        )
        self._tasks: dict[uuid.UUID, asyncio.Task[None]] = {}

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(self, file_id: uuid.UUID) -> asyncio.Task[None]:
        """Start a run for ``file_id``, or return the one already in flight."""
        task = self._tasks.get(file_id)
        if task is not None and not task.done():
            return task
        task = asyncio.create_task(self.run(file_id), name=f"convert-{file_id}")
        self._tasks[file_id] = task
        task.add_done_callback(functools.partial(self._forget, file_id))
        return task

    def _forget(self, file_id: uuid.UUID, task: asyncio.Task[None]) -> None:
        if self._tasks.get(file_id) is task:
            del self._tasks[file_id]

    def is_running(self, file_id: uuid.UUID) -> bool:
        task = self._tasks.get(file_id)
        return task is not None and not task.done()

    async def retry(self, file_id: uuid.UUID) -> FileRecord:
        """Re-enter PROCESSING from ERROR and run the full pipeline again.

        A retry starts from scratch: a new bucket key and a new upload, the
        previous remote job is not resumed.
        """
        record = await self._store.get(file_id)
        if record is None:
            raise NotFoundError(file_id)
        if record.status is not FileStatus.ERROR:
            raise InvalidTransition(record.status.value, FileStatus.PROCESSING.value)

        # The failed run may still be unwinding after its final write
        previous = self._tasks.get(file_id)
        if previous is not None and not previous.done():
            await previous

        updated = await self._store.update(
            file_id, lambda r: apply_transition(r, FileStatus.PROCESSING)
        )
        if updated is None:
            raise NotFoundError(file_id)

        logger.info("pipeline.retry", extra={"file_id": str(file_id)})
        self.schedule(file_id)
        return updated

    async def drain(self) -> None:
        """Wait for every in-flight run to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def run(self, file_id: uuid.UUID) -> None:
        """Drive one record to a terminal state. Never raises past this boundary."""
        record = await self._store.get(file_id)
        if record is None:
            logger.info("pipeline.record_missing", extra={"file_id": str(file_id)})
            return
        if record.status in (FileStatus.READY, FileStatus.ERROR):
            logger.warning(
                "pipeline.already_terminal",
                extra={"file_id": str(file_id), "status": record.status.value},
            )
            return

        try:
            await self._mark_processing(file_id)

            if record.detected_type is FileType.AUTOCAD:
                metadata: FileMetadata = await self._convert_remote(record)
            else:
                metadata = await self._convert_standard(record)

            await self._write(file_id, FileStatus.READY, metadata=metadata)
            logger.info(
                "pipeline.ready",
                extra={"file_id": str(file_id), "viewer_type": metadata.viewer_type},
            )

        except _RecordDeleted:
            logger.info("pipeline.record_deleted", extra={"file_id": str(file_id)})

        except (PipelineError, UpstreamError) as exc:
            logger.warning(
                "pipeline.failed",
                extra={"file_id": str(file_id), "error": str(exc)},
            )
            await self._write(file_id, FileStatus.ERROR, error_message=str(exc))

        except Exception as exc:
            if await self._store.get(file_id) is None:
                logger.info("pipeline.record_deleted", extra={"file_id": str(file_id)})
                return
            logger.exception("Conversion failed for file %s", file_id)
            await self._write(
                file_id,
                FileStatus.ERROR,
                error_message=str(exc) or exc.__class__.__name__,
            )

    async def _convert_standard(self, record: FileRecord) -> StandardViewerMetadata:
        await self._sleep(self._standard_delay)
        await self._ensure_exists(record.id)
        return StandardViewerMetadata()

    async def _convert_remote(self, record: FileRecord) -> APSViewerMetadata:
        job = ConversionJob(
            file_id=record.id,
            bucket_key=self._bucket_key_factory(),
            object_key=f"{record.id}-{record.original_name}",
            max_attempts=self._max_poll_attempts,
        )

        # 1. Bucket (idempotent on the client side)
        bucket = await self._client.create_bucket(job.bucket_key)
        job.bucket_key = bucket.bucket_key

        # 2. Upload bytes
        data = await self._blobs.get(record.blob_key)
        uploaded = await self._client.upload_object(job.bucket_key, job.object_key, data)
        job.object_id = uploaded.object_id
        urn = encode_urn(uploaded.object_id)
        job.urn = urn

        # 3. Translate
        await self._client.submit_translation(urn)
        logger.info(
            "pipeline.translation_submitted",
            extra={"file_id": str(record.id), "bucket_key": job.bucket_key, "urn": urn},
        )

        # 4. Poll
        manifest = await self._poll(job, urn)

        return APSViewerMetadata(
            urn=urn,
            bucket_key=job.bucket_key,
            object_key=job.object_key,
            derivative_status=manifest.raw_status,
        )

    async def _poll(self, job: ConversionJob, urn: str) -> Manifest:
        while job.attempt_count < job.max_attempts:
            await self._sleep(self._poll_interval)
            await self._ensure_exists(job.file_id)

            job.attempt_count += 1
            manifest = await self._client.get_manifest(urn)

            if manifest.status is ManifestStatus.SUCCESS:
                return manifest
            if manifest.status is ManifestStatus.FAILED:
                raise TranslationFailedError()

            logger.debug(
                "pipeline.poll_pending",
                extra={
                    "file_id": str(job.file_id),
                    "attempt": job.attempt_count,
                    "progress": manifest.progress,
                },
            )

        raise TranslationTimeoutError(job.attempt_count)

    # ------------------------------------------------------------------
    # Store writes
    # ------------------------------------------------------------------

    async def _ensure_exists(self, file_id: uuid.UUID) -> None:
        if await self._store.get(file_id) is None:
            raise _RecordDeleted()

    async def _mark_processing(self, file_id: uuid.UUID) -> None:
        def mutate(r: FileRecord) -> FileRecord:
            # A retry has already moved the record to PROCESSING
            if r.status is FileStatus.PROCESSING:
                return r
            return apply_transition(r, FileStatus.PROCESSING)

        if await self._store.update(file_id, mutate) is None:
            raise _RecordDeleted()

    async def _write(
        self,
        file_id: uuid.UUID,
        status: FileStatus,
        *,
        error_message: str | None = None,
        metadata: FileMetadata | None = None,
    ) -> FileRecord | None:
        updated = await self._store.update(
            file_id,
            lambda r: apply_transition(r, status, error_message=error_message, metadata=metadata),
        )
        if updated is None:
            logger.info(
                "pipeline.write_skipped",
                extra={"file_id": str(file_id), "status": status.value},
            )
        return updated
