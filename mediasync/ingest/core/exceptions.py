"""
Exceptions raised by the ingestion pipeline and its clients.
"""

from typing import Any, List, Optional

from .types import IngestErrorType, PipelineStage


class IngestError(Exception):
    """Base exception for ingestion errors"""

    def __init__(
        self,
        message: str,
        error_type: IngestErrorType = IngestErrorType.UNKNOWN,
        original_error: Optional[Exception] = None,
    ):
        self.error_type = error_type
        self.original_error = original_error
        super().__init__(message)


class ConfigurationError(IngestError):
    """Raised when a required setting is missing or malformed"""

    def __init__(self, message: str):
        super().__init__(message, IngestErrorType.CONFIGURATION)


class InvalidRequestError(IngestError):
    """Raised when an ingestion request cannot be processed as given"""

    def __init__(self, message: str):
        super().__init__(message, IngestErrorType.INVALID_REQUEST)


class DownloadError(IngestError):
    """Raised when a source URL cannot be fetched to local storage"""

    def __init__(
        self, url: str, message: str, status_code: Optional[int] = None, original_error: Optional[Exception] = None
    ):
        self.url = url
        self.status_code = status_code
        super().__init__(message, IngestErrorType.DOWNLOAD, original_error)


class ContentTooLargeError(DownloadError):
    """Raised when content exceeds size limits"""

    def __init__(self, url: str, content_length: int, max_length: int):
        self.content_length = content_length
        self.max_length = max_length
        super().__init__(url, f"Content too large: {content_length} bytes > {max_length} bytes for {url}")


class StorageError(IngestError):
    """Raised when an object storage operation fails"""

    def __init__(self, message: str, error_code: Optional[str] = None, original_error: Optional[Exception] = None):
        self.error_code = error_code
        super().__init__(message, IngestErrorType.STORAGE, original_error)


class RecordStoreError(IngestError):
    """Raised when the record store rejects or fails a request"""

    def __init__(self, message: str, status_code: Optional[int] = None, original_error: Optional[Exception] = None):
        self.status_code = status_code
        super().__init__(message, IngestErrorType.RECORD_STORE, original_error)


class StageFailedError(IngestError):
    """
    Raised when a unit of a fan-out stage fails.

    Sibling units have already been cancelled when this is raised.
    ``partial_results`` holds the slots of units that completed before the
    failure (``None`` for units that failed or were cancelled).
    """

    def __init__(
        self,
        stage: PipelineStage,
        source_index: int,
        cause: BaseException,
        partial_results: Optional[List[Any]] = None,
    ):
        self.stage = stage
        self.source_index = source_index
        self.cause = cause
        self.partial_results = partial_results or []
        original = cause if isinstance(cause, Exception) else None
        super().__init__(
            f"{stage.value} stage failed for item {source_index}: {cause}",
            IngestErrorType.STAGE_FAILED,
            original,
        )
