from __future__ import annotations

from pathlib import PurePath

from app.schemas.file import FileType

_AUTOCAD_EXTENSIONS = frozenset({".dwg", ".dxf", ".dwt"})
_IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp"})
_DOCUMENT_EXTENSIONS = frozenset({".doc", ".docx", ".txt", ".rtf"})


def classify(filename: str, mime_type: str) -> FileType:
    """Deterministic file type from extension first, then MIME type.

    Rules are checked in order; the first match wins:
    AUTOCAD (extension only) → PDF → IMAGE → DOCUMENT → OTHER.
    """
    ext = PurePath(filename).suffix.lower()
    mime = (mime_type or "").lower()

    if ext in _AUTOCAD_EXTENSIONS:
        return FileType.AUTOCAD
    if ext == ".pdf" or mime == "application/pdf":
        return FileType.PDF
    if ext in _IMAGE_EXTENSIONS or mime.startswith("image/"):
        return FileType.IMAGE
    if ext in _DOCUMENT_EXTENSIONS or "document" in mime or "text" in mime:
        return FileType.DOCUMENT
    return FileType.OTHER
