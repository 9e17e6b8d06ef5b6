from __future__ import annotations

import logging
import uuid
from pathlib import PurePath

from app.core.errors import SizeExceeded, ValidationError
from app.db.blobs import BlobStore
from app.db.models import FileRecord
from app.db.store import StatusStore
from app.ingestion.classifier import classify
from app.ingestion.pipeline import ConversionOrchestrator

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024


class IngestionGate:
    """Validates uploads, records them and hands them to the orchestrator."""

    def __init__(
        self,
        store: StatusStore,
        blobs: BlobStore,
        orchestrator: ConversionOrchestrator,
        *,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._orchestrator = orchestrator
        self._max_upload_bytes = max_upload_bytes

    def validate(self, filename: str | None, size_bytes: int) -> None:
        if not filename or PurePath(filename).name in {"", ".", ".."}:
            raise ValidationError(f"Uploaded file has no usable filename: {filename!r}")
        if size_bytes > self._max_upload_bytes:
            raise SizeExceeded(filename, size_bytes, self._max_upload_bytes)

    async def accept(self, filename: str, mime_type: str | None, data: bytes) -> FileRecord:
        """Create an UPLOADING record and schedule conversion without waiting for it."""
        self.validate(filename, len(data))

        mime_type = mime_type or "application/octet-stream"
        file_id = uuid.uuid4()
        blob_key = f"{file_id}/{PurePath(filename).name}"
        await self._blobs.put(blob_key, data, mime_type)

        record = await self._store.create(
            FileRecord(
                id=file_id,
                original_name=filename,
                size_bytes=len(data),
                mime_type=mime_type,
                detected_type=classify(filename, mime_type),
                blob_key=blob_key,
            )
        )
        logger.info(
            "ingest.accepted",
            extra={
                "file_id": str(record.id),
                "detected_type": record.detected_type.value,
                "size_bytes": record.size_bytes,
            },
        )

        self._orchestrator.schedule(record.id)
        return record
