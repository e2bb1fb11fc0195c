from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class ScreenshotRequest(BaseModel):
    """Inbound body for /screenshot"""

    id: str = Field(..., min_length=1, description="Parent (listing) record id")
    url: str = Field(..., min_length=1, description="Webpage to render")


class AttachmentRequest(BaseModel):
    """Inbound body for /attachment"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, description="Parent (listing) record id")
    download_url: str = Field(..., min_length=1, alias="downloadUrl", description="One URL or a comma-separated list")


class IngestionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    parent_record_id: str
    source_locator: str

    def source_urls(self) -> List[str]:
        """Split the locator on commas, trimming whitespace and dropping empty entries."""
        return [part.strip() for part in self.source_locator.split(",") if part.strip()]


class IngestionResponse(BaseModel):
    parent_record_id: str
    record_ids: List[str] = Field(default_factory=list)
    storage_urls: List[str] = Field(default_factory=list)
    patches_issued: int = 0
    link_mode: str
