from __future__ import annotations

import pytest

from app.core.errors import SizeExceeded, ValidationError
from app.ingestion.gate import MAX_UPLOAD_BYTES
from app.schemas.file import FileStatus, FileType


async def test_accept_creates_uploading_record(gate, store, blobs, orchestrator) -> None:
    record = await gate.accept("plan.dwg", "application/acad", b"dwg-bytes")

    assert record.status is FileStatus.UPLOADING
    assert record.detected_type is FileType.AUTOCAD
    assert record.size_bytes == len(b"dwg-bytes")
    assert record.processed_at is None
    assert await store.get(record.id) == record
    assert orchestrator.is_running(record.id)
    assert await blobs.get(record.blob_key) == b"dwg-bytes"

    await orchestrator.drain()


async def test_accept_returns_before_conversion_finishes(gate, store, orchestrator) -> None:
    record = await gate.accept("spec.pdf", "application/pdf", b"%PDF-1.7")

    # The handoff is fire-and-forget: the run is scheduled, not awaited
    assert (await store.get(record.id)).status is FileStatus.UPLOADING

    await orchestrator.drain()
    assert (await store.get(record.id)).status is FileStatus.READY


async def test_oversize_upload_creates_no_record(gate, store, fake_client) -> None:
    data = b"\0" * (60 * 1024 * 1024)

    with pytest.raises(SizeExceeded) as exc_info:
        await gate.accept("huge.dwg", "application/acad", data)

    assert isinstance(exc_info.value, ValidationError)
    assert exc_info.value.limit_bytes == MAX_UPLOAD_BYTES
    assert await store.list() == []
    assert fake_client.calls == []


def test_limit_is_inclusive(gate) -> None:
    gate.validate("edge.dwg", MAX_UPLOAD_BYTES)

    with pytest.raises(SizeExceeded):
        gate.validate("edge.dwg", MAX_UPLOAD_BYTES + 1)


@pytest.mark.parametrize("filename", [None, "", ".", "..", "drawings/.."])
def test_missing_filename_rejected(gate, filename) -> None:
    with pytest.raises(ValidationError):
        gate.validate(filename, 10)


async def test_missing_mime_defaults_to_octet_stream(gate, orchestrator) -> None:
    record = await gate.accept("archive.bin", None, b"\x00\x01")

    assert record.mime_type == "application/octet-stream"
    assert record.detected_type is FileType.OTHER
    await orchestrator.drain()
