from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from app.core.errors import InvalidTransition
from app.schemas.file import FileMetadata, FileStatus, FileType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FileRecord:
    """One uploaded artifact and its conversion state.

    Records are immutable values: every change goes through
    ``StatusStore.update`` which swaps in a new instance atomically.
    """

    original_name: str
    size_bytes: int
    mime_type: str
    detected_type: FileType
    blob_key: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    status: FileStatus = FileStatus.UPLOADING
    error_message: str | None = None
    metadata: FileMetadata | None = None
    uploaded_at: datetime = field(default_factory=utcnow)
    processed_at: datetime | None = None


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

_ALLOWED: dict[FileStatus, frozenset[FileStatus]] = {
    FileStatus.UPLOADING: frozenset({FileStatus.PROCESSING, FileStatus.ERROR}),
    FileStatus.PROCESSING: frozenset({FileStatus.READY, FileStatus.ERROR}),
    FileStatus.READY: frozenset(),
    # error -> processing is the retry edge
    FileStatus.ERROR: frozenset({FileStatus.PROCESSING}),
}

_TERMINAL = frozenset({FileStatus.READY, FileStatus.ERROR})


def apply_transition(
    record: FileRecord,
    status: FileStatus,
    *,
    error_message: str | None = None,
    metadata: FileMetadata | None = None,
) -> FileRecord:
    """Return a copy of ``record`` moved to ``status``.

    Raises InvalidTransition for edges outside the state machine. Leaving a
    state clears its payload: error_message only survives on ERROR, metadata
    only on READY. processed_at is stamped the first time a terminal state is
    reached and kept afterwards.
    """
    if status not in _ALLOWED[record.status]:
        raise InvalidTransition(record.status.value, status.value)

    if status is FileStatus.READY and metadata is None:
        raise ValueError("READY requires metadata")
    if status is FileStatus.ERROR and not error_message:
        raise ValueError("ERROR requires an error_message")

    processed_at = record.processed_at
    if status in _TERMINAL and processed_at is None:
        processed_at = utcnow()

    return replace(
        record,
        status=status,
        error_message=error_message if status is FileStatus.ERROR else None,
        metadata=metadata if status is FileStatus.READY else None,
        processed_at=processed_at,
    )
