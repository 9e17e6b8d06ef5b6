from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class ManifestStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class Bucket:
    bucket_key: str
    bucket_owner: str | None = None
    policy_key: str | None = None


@dataclass(frozen=True)
class UploadedObject:
    bucket_key: str
    object_key: str
    object_id: str
    size: int | None = None


@dataclass(frozen=True)
class TranslationJob:
    urn: str
    result: str


@dataclass(frozen=True)
class Manifest:
    """A translation job's status document, classified into one of three outcomes."""

    status: ManifestStatus
    raw_status: str
    progress: str | None = None
    detail: dict = field(default_factory=dict)


def classify_manifest(raw_status: str | None) -> ManifestStatus:
    """Map the service's manifest status onto pending / success / failed.

    Anything that is not a recognised final state (``pending``, ``inprogress``,
    ``timeout``, unknown values, missing field) is treated as still pending; the
    poll loop's attempt ceiling decides when to give up.
    """
    value = (raw_status or "").lower()
    if value == "success":
        return ManifestStatus.SUCCESS
    if value == "failed":
        return ManifestStatus.FAILED
    return ManifestStatus.PENDING


def encode_urn(object_id: str) -> str:
    """URL-safe base64 of the object id, padding stripped."""
    return base64.urlsafe_b64encode(object_id.encode()).decode("ascii").rstrip("=")


class BaseTranslationClient(ABC):
    """Abstract remote document-translation service.

    Concrete implementation: APSClient (Autodesk Platform Services).
    """

    @abstractmethod
    async def authenticate(self) -> str:
        """Return a bearer token, reusing a cached one until it expires."""
        ...

    @abstractmethod
    async def create_bucket(self, bucket_key: str) -> Bucket:
        """Create a bucket, or return the existing one if the key is taken."""
        ...

    @abstractmethod
    async def upload_object(self, bucket_key: str, object_key: str, data: bytes) -> UploadedObject:
        ...

    @abstractmethod
    async def submit_translation(self, urn: str) -> TranslationJob:
        ...

    @abstractmethod
    async def get_manifest(self, urn: str) -> Manifest:
        ...

    @abstractmethod
    async def viewer_token(self) -> tuple[str, int]:
        """Return (access_token, seconds until expiry) for the browser viewer."""
        ...

    async def aclose(self) -> None:
        return None
