"""
Core types for the media ingestion pipeline.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, Field


class PipelineStage(str, Enum):
    """Stages of an ingestion request, in execution order"""

    RESOLVE = "resolve"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    CREATE = "create"
    LINK = "link"


class IngestErrorType(str, Enum):
    """Types of ingestion errors"""

    INVALID_REQUEST = "invalid_request"
    CONFIGURATION = "configuration"
    DOWNLOAD = "download"
    STORAGE = "storage"
    RECORD_STORE = "record_store"
    STAGE_FAILED = "stage_failed"
    UNKNOWN = "unknown"


class LinkMode(str, Enum):
    """How child record ids are written onto the parent record"""

    BATCH = "batch"  # one PATCH carrying every child id
    PER_CHILD = "per_child"  # one concurrent PATCH per child id, last writer wins


class DownloadedItem(BaseModel):
    """A source URL fetched into a local temp file"""

    source_index: int = Field(..., ge=0)
    source_url: str
    local_path: Path
    size_bytes: int = 0


class StoredAddress(BaseModel):
    """Durable location of an uploaded item"""

    source_index: int = Field(..., ge=0)
    key: str
    url: str


class ChildRecord(BaseModel):
    """Media record created in the record store for one stored item"""

    source_index: int = Field(..., ge=0)
    record_id: str
    address: StoredAddress


class IngestionResult(BaseModel):
    """Outcome of one successful ingestion request"""

    parent_record_id: str
    children: List[ChildRecord] = Field(default_factory=list)
    patches_issued: int = 0
    link_mode: LinkMode = LinkMode.BATCH
    stage_durations: Dict[PipelineStage, float] = Field(default_factory=dict)

    @property
    def record_ids(self) -> List[str]:
        return [child.record_id for child in self.children]

    @property
    def storage_urls(self) -> List[str]:
        return [child.address.url for child in self.children]
