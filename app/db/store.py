from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable

from app.db.models import FileRecord


class StatusStore:
    """In-memory keyed store of FileRecords.

    Reads never lock. Writes are serialised per key with one asyncio.Lock
    per record id, so updates to different files never wait on each other.
    Mutators are plain callables that receive the current record and return
    the replacement; an exception raised inside a mutator leaves the stored
    value untouched.
    """

    def __init__(self) -> None:
        self._records: dict[uuid.UUID, FileRecord] = {}
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}

    def _lock_for(self, file_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(file_id)
        if lock is None:
            lock = self._locks[file_id] = asyncio.Lock()
        return lock

    async def get(self, file_id: uuid.UUID) -> FileRecord | None:
        return self._records.get(file_id)

    async def list(self) -> list[FileRecord]:
        """All records, newest upload first."""
        return sorted(self._records.values(), key=lambda r: r.uploaded_at, reverse=True)

    async def create(self, record: FileRecord) -> FileRecord:
        async with self._lock_for(record.id):
            if record.id in self._records:
                raise KeyError(f"record {record.id} already exists")
            self._records[record.id] = record
        return record

    async def update(
        self,
        file_id: uuid.UUID,
        mutator: Callable[[FileRecord], FileRecord],
    ) -> FileRecord | None:
        """Apply ``mutator`` atomically. Returns None (and writes nothing) if the id is gone."""
        if file_id not in self._records:
            return None
        async with self._lock_for(file_id):
            current = self._records.get(file_id)
            if current is None:
                # deleted while we waited for the lock
                return None
            updated = mutator(current)
            self._records[file_id] = updated
            return updated

    async def delete(self, file_id: uuid.UUID) -> bool:
        async with self._lock_for(file_id):
            removed = self._records.pop(file_id, None)
        self._locks.pop(file_id, None)
        return removed is not None
