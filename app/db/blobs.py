from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """Holds the raw bytes of uploaded artifacts, addressed by an opaque key."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> None: ...

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return stored bytes. Raises FileNotFoundError for unknown keys."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the blob. Missing keys are ignored."""
        ...


class LocalBlobStore(BlobStore):
    def __init__(self, root: Path) -> None:
        self._root = root

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise ValueError(f"blob key escapes storage root: {key!r}")
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> None:  # noqa: ARG002
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)

    async def get(self, key: str) -> bytes:
        return await asyncio.to_thread(self._path(key).read_bytes)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)


class S3BlobStore(BlobStore):
    """S3-backed store. boto3 is synchronous; every call runs via asyncio.to_thread()."""

    def __init__(self, bucket: str, prefix: str, client: object | None = None, **client_kwargs: object) -> None:
        self._bucket = bucket
        self._prefix = prefix
        self._client = client or boto3.client("s3", **client_kwargs)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,  # type: ignore[attr-defined]
                Bucket=self._bucket,
                Key=self._key(key),
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise RuntimeError(f"S3 upload failed: {exc}") from exc

    async def get(self, key: str) -> bytes:
        try:
            response = await asyncio.to_thread(
                self._client.get_object,  # type: ignore[attr-defined]
                Bucket=self._bucket,
                Key=self._key(key),
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                raise FileNotFoundError(key) from exc
            raise RuntimeError(f"S3 download failed: {exc}") from exc
        except BotoCoreError as exc:
            raise RuntimeError(f"S3 download failed: {exc}") from exc
        return await asyncio.to_thread(response["Body"].read)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.delete_object,  # type: ignore[attr-defined]
                Bucket=self._bucket,
                Key=self._key(key),
            )
        except (BotoCoreError, ClientError) as exc:
            # The record is already deleted; the object is left orphaned
            logger.warning("blobs.delete_s3.failed", extra={"key": key, "error": str(exc)})


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.blob_backend == "s3":
        return S3BlobStore(
            settings.s3_bucket_name,
            settings.s3_prefix,
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )
    return LocalBlobStore(settings.upload_dir)
