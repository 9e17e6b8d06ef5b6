from __future__ import annotations

import pydantic
import pytest
from pydantic import TypeAdapter

from app.core.errors import InvalidTransition
from app.db.models import FileRecord, apply_transition
from app.schemas.file import (
    APSViewerMetadata,
    FileMetadata,
    FileStatus,
    FileType,
    StandardViewerMetadata,
)

_APS = APSViewerMetadata(urn="dXJu", bucket_key="b", object_key="o", derivative_status="success")


def _uploading() -> FileRecord:
    return FileRecord(
        original_name="plan.dwg",
        size_bytes=1,
        mime_type="application/octet-stream",
        detected_type=FileType.AUTOCAD,
        blob_key="k",
    )


def test_happy_path_sets_processed_at_on_ready() -> None:
    processing = apply_transition(_uploading(), FileStatus.PROCESSING)
    assert processing.processed_at is None

    ready = apply_transition(processing, FileStatus.READY, metadata=_APS)
    assert ready.status is FileStatus.READY
    assert ready.metadata == _APS
    assert ready.processed_at is not None


def test_ready_requires_metadata() -> None:
    processing = apply_transition(_uploading(), FileStatus.PROCESSING)
    with pytest.raises(ValueError):
        apply_transition(processing, FileStatus.READY)


def test_error_requires_message() -> None:
    processing = apply_transition(_uploading(), FileStatus.PROCESSING)
    with pytest.raises(ValueError):
        apply_transition(processing, FileStatus.ERROR)


def test_retry_clears_error_but_keeps_processed_at() -> None:
    processing = apply_transition(_uploading(), FileStatus.PROCESSING)
    failed = apply_transition(processing, FileStatus.ERROR, error_message="translation failed")

    retried = apply_transition(failed, FileStatus.PROCESSING)

    assert retried.error_message is None
    assert retried.processed_at == failed.processed_at


@pytest.mark.parametrize(
    "path, target",
    [
        ([], FileStatus.READY),
        ([FileStatus.PROCESSING], FileStatus.UPLOADING),
        ([FileStatus.PROCESSING], FileStatus.PROCESSING),
    ],
)
def test_invalid_edges_raise(path: list[FileStatus], target: FileStatus) -> None:
    record = _uploading()
    for status in path:
        record = apply_transition(record, status)

    with pytest.raises(InvalidTransition):
        apply_transition(record, target, metadata=_APS, error_message="x")


def test_ready_is_final() -> None:
    ready = apply_transition(
        apply_transition(_uploading(), FileStatus.PROCESSING),
        FileStatus.READY,
        metadata=StandardViewerMetadata(),
    )
    for target in FileStatus:
        with pytest.raises(InvalidTransition):
            apply_transition(ready, target, metadata=_APS, error_message="x")


def test_metadata_union_dispatches_on_viewer_type() -> None:
    adapter = TypeAdapter(FileMetadata)

    aps = adapter.validate_python(
        {"viewerType": "aps", "urn": "dXJu", "bucketKey": "b", "objectKey": "o", "derivativeStatus": "success"}
    )
    standard = adapter.validate_python({"viewerType": "standard", "processed": True})

    assert isinstance(aps, APSViewerMetadata)
    assert isinstance(standard, StandardViewerMetadata)


def test_aps_metadata_requires_urn() -> None:
    with pytest.raises(pydantic.ValidationError):
        APSViewerMetadata(urn="", bucket_key="b", object_key="o", derivative_status="success")
