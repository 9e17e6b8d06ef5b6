from __future__ import annotations

import logging
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response

from app.core.errors import InvalidTransition, NotFoundError, ValidationError
from app.db.blobs import BlobStore
from app.db.models import FileRecord
from app.db.store import StatusStore
from app.dependencies import get_blob_store, get_gate, get_orchestrator, get_store
from app.ingestion.gate import IngestionGate
from app.ingestion.pipeline import ConversionOrchestrator
from app.schemas.file import (
    FileRecordResponse,
    FileStatus,
    MessageResponse,
    StatusPatch,
    UploadResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_response(record: FileRecord) -> FileRecordResponse:
    return FileRecordResponse(
        id=record.id,
        original_name=record.original_name,
        size_bytes=record.size_bytes,
        mime_type=record.mime_type,
        detected_type=record.detected_type,
        status=record.status,
        error_message=record.error_message,
        metadata=record.metadata,
        uploaded_at=record.uploaded_at,
        processed_at=record.processed_at,
    )


@router.get("", response_model=list[FileRecordResponse])
async def list_files(store: StatusStore = Depends(get_store)) -> list[FileRecordResponse]:
    """All files, newest upload first."""
    return [_to_response(r) for r in await store.list()]


@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    files: list[UploadFile] | None = File(default=None),
    gate: IngestionGate = Depends(get_gate),
) -> UploadResponse:
    """Accept one or more files. Conversion continues in the background; poll GET /files/{id}."""
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    # Validate the whole batch before creating any record
    payloads: list[tuple[UploadFile, bytes]] = []
    for upload in files:
        try:
            if upload.size is not None:
                gate.validate(upload.filename, upload.size)
            data = await upload.read()
            gate.validate(upload.filename, len(data))
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        payloads.append((upload, data))

    records = [
        await gate.accept(upload.filename or "", upload.content_type, data)
        for upload, data in payloads
    ]
    return UploadResponse(
        message="Files uploaded successfully",
        files=[_to_response(r) for r in records],
    )


@router.get("/{file_id}", response_model=FileRecordResponse)
async def get_file(file_id: UUID, store: StatusStore = Depends(get_store)) -> FileRecordResponse:
    record = await store.get(file_id)
    if record is None:
        raise HTTPException(status_code=404, detail="File not found")
    return _to_response(record)


@router.patch("/{file_id}/status", response_model=FileRecordResponse)
async def update_file_status(
    file_id: UUID,
    body: StatusPatch,
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
) -> FileRecordResponse:
    """Retry a failed conversion by requesting ``{"status": "processing"}``."""
    if body.status is not FileStatus.PROCESSING:
        raise HTTPException(
            status_code=400,
            detail="Only a retry (status=processing) can be requested",
        )
    try:
        record = await orchestrator.retry(file_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="File not found") from exc
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _to_response(record)


@router.delete("/{file_id}", response_model=MessageResponse)
async def delete_file(
    file_id: UUID,
    store: StatusStore = Depends(get_store),
    blobs: BlobStore = Depends(get_blob_store),
) -> MessageResponse:
    """Delete a file. Safe mid-conversion: the running pipeline stops writing."""
    record = await store.get(file_id)
    if record is None or not await store.delete(file_id):
        raise HTTPException(status_code=404, detail="File not found")

    await blobs.delete(record.blob_key)
    logger.info("files.deleted", extra={"file_id": str(file_id)})
    return MessageResponse(message="File deleted successfully")


@router.get("/{file_id}/download")
async def download_file(
    file_id: UUID,
    store: StatusStore = Depends(get_store),
    blobs: BlobStore = Depends(get_blob_store),
) -> Response:
    record = await store.get(file_id)
    if record is None:
        raise HTTPException(status_code=404, detail="File not found")
    try:
        data = await blobs.get(record.blob_key)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail="File content not found") from exc

    return Response(
        content=data,
        media_type=record.mime_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(record.original_name)}"
        },
    )
