from .airtable import AirtableRecord, AirtableRecordsResponse
from .common import ErrorResponse, HealthStatus
from .media import AttachmentRequest, IngestionRequest, IngestionResponse, ScreenshotRequest

__all__ = [
    # common
    "ErrorResponse",
    "HealthStatus",
    # media
    "ScreenshotRequest",
    "AttachmentRequest",
    "IngestionRequest",
    "IngestionResponse",
    # airtable
    "AirtableRecord",
    "AirtableRecordsResponse",
]
