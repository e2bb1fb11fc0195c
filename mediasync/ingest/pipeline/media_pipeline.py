"""
Media ingestion pipeline.

Runs download -> upload -> create -> link for one ingestion request. Each
stage fans out one task per item and must finish completely before the
next stage starts. A failure is scoped to its request: it is raised to the
caller and never takes the process down.
"""

import logging
import time
from pathlib import Path
from typing import Awaitable, Dict, List, Optional, Sequence, TypeVar

from ...schema.media import IngestionRequest
from ..config.settings import MediaSyncSettings, get_cached_settings
from ..core.exceptions import InvalidRequestError, StageFailedError
from ..core.interfaces import MediaDownloader, ObjectStore, RecordStore
from ..core.types import ChildRecord, DownloadedItem, IngestionResult, LinkMode, PipelineStage, StoredAddress
from ..screenshot.signer import sign_screenshot_url
from ..utils.logging import IngestLoggerAdapter, get_ingest_logger
from .fanout import fan_out

logger = logging.getLogger(__name__)

R = TypeVar("R")


class MediaIngestionPipeline:
    """
    Ingests media for one parent record per call.

    The collaborators are shared across requests and must be safe for
    concurrent use; the pipeline itself keeps no per-request state.
    """

    def __init__(
        self,
        downloader: MediaDownloader,
        object_store: ObjectStore,
        record_store: RecordStore,
        settings: Optional[MediaSyncSettings] = None,
        link_mode: Optional[LinkMode] = None,
    ):
        self.settings = settings or get_cached_settings()
        self.downloader = downloader
        self.object_store = object_store
        self.record_store = record_store
        self.link_mode = link_mode or self.settings.link_mode
        self.download_directory = Path(self.settings.download_directory)
        self._event_logger = get_ingest_logger("mediasync.pipeline")

        self.stats = {
            "requests_started": 0,
            "requests_succeeded": 0,
            "requests_failed": 0,
            "items_ingested": 0,
        }

    async def ingest_attachments(self, parent_record_id: str, download_url: str) -> IngestionResult:
        """Ingest one URL or a comma-separated list of URLs."""
        return await self.run(IngestionRequest(parent_record_id=parent_record_id, source_locator=download_url))

    async def ingest_screenshot(self, parent_record_id: str, target_url: str) -> IngestionResult:
        """Render ``target_url`` through the screenshot service and ingest the image."""
        # A signed URL may itself contain commas; never split it
        return await self._run_urls(parent_record_id, [target_url], resolve=True)

    async def run(self, request: IngestionRequest) -> IngestionResult:
        """
        Run every stage for a request.

        Raises:
            InvalidRequestError: If the request has no source URLs
            StageFailedError: If any unit of any stage fails
        """
        return await self._run_urls(request.parent_record_id, request.source_urls())

    async def _run_urls(self, parent_record_id: str, urls: List[str], resolve: bool = False) -> IngestionResult:
        if not urls:
            raise InvalidRequestError(f"No source URLs given for record {parent_record_id}")

        events = IngestLoggerAdapter(self._event_logger, parent_record_id, item_count=len(urls))
        durations: Dict[PipelineStage, float] = {}
        # Every finished download, including ones a later failure or cancellation strands
        fetched: List[DownloadedItem] = []
        self.stats["requests_started"] += 1

        try:
            if resolve:
                urls = await self._timed(events, durations, PipelineStage.RESOLVE, self.resolve_all(urls))
            downloaded = await self._timed(
                events, durations, PipelineStage.DOWNLOAD, self.download_all(urls, completed=fetched)
            )
            addresses = await self._timed(events, durations, PipelineStage.UPLOAD, self.upload_all(downloaded))
            children = await self._timed(
                events, durations, PipelineStage.CREATE, self.create_all(addresses, parent_record_id)
            )
            patches = await self._timed(
                events, durations, PipelineStage.LINK, self.link_all(children, parent_record_id)
            )

        except StageFailedError as e:
            self.stats["requests_failed"] += 1
            events.log_stage_failed(e.stage.value, e.source_index, type(e.cause).__name__, str(e.cause))
            self._discard(fetched)
            raise

        except BaseException:
            self.stats["requests_failed"] += 1
            self._discard(fetched)
            raise

        self.stats["requests_succeeded"] += 1
        self.stats["items_ingested"] += len(children)

        result = IngestionResult(
            parent_record_id=parent_record_id,
            children=children,
            patches_issued=patches,
            link_mode=self.link_mode,
            stage_durations=durations,
        )
        events.log_ingestion_completed(result.record_ids, patches, link_mode=self.link_mode.value)
        return result

    async def resolve_all(self, target_urls: Sequence[str]) -> List[str]:
        """Sign each target URL for the screenshot service."""
        return [sign_screenshot_url(target_url, self.settings) for target_url in target_urls]

    async def download_all(
        self, urls: Sequence[str], completed: Optional[List[DownloadedItem]] = None
    ) -> List[DownloadedItem]:
        """
        Download every URL concurrently.

        Each finished item is also appended to ``completed`` as soon as it
        lands, so a caller can clean up after a failure or cancellation.
        """

        async def _download(index: int, url: str) -> DownloadedItem:
            item = await self.downloader.download(index, url, self.download_directory)
            if completed is not None:
                completed.append(item)
            return item

        return await fan_out(PipelineStage.DOWNLOAD, urls, _download)

    async def upload_all(self, items: Sequence[DownloadedItem]) -> List[StoredAddress]:
        async def _upload(_: int, item: DownloadedItem) -> StoredAddress:
            return await self.object_store.put_file(item)

        return await fan_out(PipelineStage.UPLOAD, items, _upload)

    async def create_all(self, addresses: Sequence[StoredAddress], parent_record_id: str) -> List[ChildRecord]:
        async def _create(_: int, address: StoredAddress) -> ChildRecord:
            record_id = await self.record_store.create_media_record(address, parent_record_id)
            return ChildRecord(source_index=address.source_index, record_id=record_id, address=address)

        return await fan_out(PipelineStage.CREATE, addresses, _create)

    async def link_all(self, children: Sequence[ChildRecord], parent_record_id: str) -> int:
        """
        Write child ids onto the parent record.

        Returns:
            Number of update calls issued
        """
        if not children:
            return 0

        child_ids = [child.record_id for child in children]
        if self.link_mode == LinkMode.BATCH:
            await fan_out(
                PipelineStage.LINK,
                [child_ids],
                lambda _, ids: self.record_store.update_parent_record(parent_record_id, ids),
            )
            return 1

        await fan_out(
            PipelineStage.LINK,
            child_ids,
            lambda _, child_id: self.record_store.update_parent_record(parent_record_id, [child_id]),
        )
        return len(child_ids)

    async def _timed(
        self,
        events: IngestLoggerAdapter,
        durations: Dict[PipelineStage, float],
        stage: PipelineStage,
        step: Awaitable[R],
    ) -> R:
        events.log_stage_started(stage.value)
        start_time = time.time()
        result = await step
        durations[stage] = time.time() - start_time
        events.log_stage_completed(stage.value, durations[stage] * 1000)
        return result

    def _discard(self, items: Sequence[DownloadedItem]) -> None:
        for item in items:
            try:
                self.downloader.discard(item)
            except OSError as e:
                logger.warning(f"Could not remove temp file {item.local_path}: {e}")

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()
