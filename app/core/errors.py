from __future__ import annotations


class ConversionServiceError(Exception):
    """Base class for all domain errors raised by the service."""


# ---------------------------------------------------------------------------
# Synchronous: surfaced directly to the HTTP caller
# ---------------------------------------------------------------------------


class ValidationError(ConversionServiceError):
    """Upload rejected before any record was created."""


class SizeExceeded(ValidationError):
    def __init__(self, filename: str, size_bytes: int, limit_bytes: int) -> None:
        self.filename = filename
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f"{filename} is {size_bytes} bytes, exceeds the {limit_bytes} byte limit"
        )


class NotFoundError(ConversionServiceError):
    def __init__(self, file_id: object) -> None:
        self.file_id = file_id
        super().__init__(f"File {file_id} not found")


class InvalidTransition(ConversionServiceError):
    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition from {current} to {requested}")


# ---------------------------------------------------------------------------
# Asynchronous: only visible through a record's status / error_message
# ---------------------------------------------------------------------------


class UpstreamError(ConversionServiceError):
    """The remote translation service could not be reached or rejected a call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UpstreamAuthError(UpstreamError):
    pass


class UpstreamRequestError(UpstreamError):
    pass


class PipelineError(ConversionServiceError):
    pass


class TranslationFailedError(PipelineError):
    def __init__(self) -> None:
        super().__init__("translation failed")


class TranslationTimeoutError(PipelineError):
    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__("translation timeout")
