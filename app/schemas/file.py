from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FileType(str, Enum):
    AUTOCAD = "autocad"
    PDF = "pdf"
    IMAGE = "image"
    DOCUMENT = "document"
    OTHER = "other"


class FileStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Metadata: one shape per viewer, discriminated on viewerType
# ---------------------------------------------------------------------------


class APSViewerMetadata(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    viewer_type: Literal["aps"] = "aps"
    urn: str = Field(min_length=1)
    bucket_key: str = Field(min_length=1)
    object_key: str = Field(min_length=1)
    derivative_status: str


class StandardViewerMetadata(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    viewer_type: Literal["standard"] = "standard"
    processed: bool = True


FileMetadata = Annotated[
    Union[APSViewerMetadata, StandardViewerMetadata],
    Field(discriminator="viewer_type"),
]


# ---------------------------------------------------------------------------
# HTTP payloads
# ---------------------------------------------------------------------------


class FileRecordResponse(_CamelModel):
    id: UUID
    original_name: str
    size_bytes: int
    mime_type: str
    detected_type: FileType
    status: FileStatus
    error_message: str | None = None
    metadata: FileMetadata | None = None
    uploaded_at: datetime
    processed_at: datetime | None = None


class UploadResponse(BaseModel):
    message: str
    files: list[FileRecordResponse]


class StatusPatch(_CamelModel):
    status: FileStatus
    error_message: str | None = None  # accepted for compatibility, ignored on retry


class MessageResponse(BaseModel):
    message: str


class ViewerTokenResponse(BaseModel):
    access_token: str
    expires_in: int
