"""
Ingestion API router.

Both endpoints run the full pipeline for the request before responding.
"""

import logging
from typing import Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException

from ...ingest.config.settings import MediaSyncSettings, get_cached_settings
from ...ingest.core.types import IngestionResult
from ...ingest.http_client.client import MediaHTTPClient
from ...ingest.pipeline import MediaIngestionPipeline
from ...ingest.records import AirtableRecordStore
from ...ingest.storage import S3ObjectStore
from ...schema.media import AttachmentRequest, IngestionResponse, ScreenshotRequest

logger = logging.getLogger(__name__)

# Shared pipeline instance (initialized on startup)
_pipeline: Optional[MediaIngestionPipeline] = None

router = APIRouter(tags=["ingest"])


async def initialize_pipeline(settings: Optional[MediaSyncSettings] = None) -> MediaIngestionPipeline:
    """Create the shared clients and the pipeline that uses them."""
    global _pipeline

    settings = settings or get_cached_settings()
    _pipeline = MediaIngestionPipeline(
        downloader=MediaHTTPClient(settings),
        object_store=S3ObjectStore(settings),
        record_store=AirtableRecordStore(settings),
        settings=settings,
    )
    logger.info(f"Ingestion pipeline initialized (link_mode={_pipeline.link_mode.value})")
    return _pipeline


async def shutdown_pipeline() -> None:
    global _pipeline

    if _pipeline is not None:
        await _pipeline.downloader.close()
        await _pipeline.object_store.close()
        await _pipeline.record_store.close()
        _pipeline = None
        logger.info("Ingestion pipeline shut down")


def get_pipeline() -> MediaIngestionPipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Ingestion pipeline not initialized")
    return _pipeline


async def pipeline_component_health() -> Dict[str, Literal["ok", "down"]]:
    if _pipeline is None:
        return {}
    checks = {
        "downloader": await _pipeline.downloader.health_check(),
        "object_store": await _pipeline.object_store.health_check(),
        "record_store": await _pipeline.record_store.health_check(),
    }
    return {name: "ok" if check.get("status") == "healthy" else "down" for name, check in checks.items()}


def to_response(result: IngestionResult) -> IngestionResponse:
    return IngestionResponse(
        parent_record_id=result.parent_record_id,
        record_ids=result.record_ids,
        storage_urls=result.storage_urls,
        patches_issued=result.patches_issued,
        link_mode=result.link_mode.value,
    )


@router.post("/screenshot", response_model=IngestionResponse)
async def new_screenshot(
    body: ScreenshotRequest,
    pipeline: MediaIngestionPipeline = Depends(get_pipeline),
) -> IngestionResponse:
    """Render a webpage, store the image and link it to the listing record."""
    logger.info(f"Screenshot requested for record {body.id}", extra={"record_id": body.id, "url": body.url})
    return to_response(await pipeline.ingest_screenshot(body.id, body.url))


@router.post("/attachment", response_model=IngestionResponse)
async def new_attachment(
    body: AttachmentRequest,
    pipeline: MediaIngestionPipeline = Depends(get_pipeline),
) -> IngestionResponse:
    """Store one or more attachment URLs and link them to the listing record."""
    logger.info(f"Attachment requested for record {body.id}", extra={"record_id": body.id})
    return to_response(await pipeline.ingest_attachments(body.id, body.download_url))
