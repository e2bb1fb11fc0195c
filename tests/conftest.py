"""
Shared test fixtures and fakes for pytest.
"""

import asyncio
import itertools
import os
import sys
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

# Add repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from mediasync.ingest.config.settings import MediaSyncSettings, reset_settings_cache  # noqa: E402
from mediasync.ingest.core.exceptions import DownloadError, RecordStoreError, StorageError  # noqa: E402
from mediasync.ingest.core.interfaces import MediaDownloader, ObjectStore, RecordStore  # noqa: E402
from mediasync.ingest.core.types import DownloadedItem, StoredAddress  # noqa: E402
from mediasync.ingest.storage.s3_client import build_object_url, object_key_for  # noqa: E402


def make_settings(tmp_path: Path, **overrides) -> MediaSyncSettings:
    values = dict(
        app_env="development",
        techulus_api_url="https://cdn.capture.test/",
        techulus_api_key="key-123",
        techulus_secret="s3cret",
        aws_region="eu-west-2",
        aws_s3_bucket="listing-media",
        airtable_api_url="https://airtable.test/v0",
        airtable_base="appBase",
        airtable_token="tok-abc",
        download_directory=str(tmp_path / "screenshots"),
        json_logs=False,
    )
    values.update(overrides)
    return MediaSyncSettings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path: Path) -> MediaSyncSettings:
    return make_settings(tmp_path)


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    yield
    reset_settings_cache()


# ============================================================================
# Fakes for the pipeline collaborators
# ============================================================================


class FakeDownloader(MediaDownloader):
    """Writes the source URL into a real temp file."""

    def __init__(self, fail_on: Optional[Set[str]] = None, delays: Optional[Dict[str, float]] = None):
        self.fail_on = fail_on or set()
        self.delays = delays or {}
        self.calls: List[str] = []
        self.cancelled: List[str] = []
        self.discarded: List[DownloadedItem] = []

    async def download(self, source_index: int, url: str, directory: Path) -> DownloadedItem:
        self.calls.append(url)
        try:
            await asyncio.sleep(self.delays.get(url, 0))
        except asyncio.CancelledError:
            self.cancelled.append(url)
            raise
        if url in self.fail_on:
            raise DownloadError(url, f"HTTP 500 error for {url}", status_code=500)

        directory.mkdir(parents=True, exist_ok=True)
        fd, path = tempfile.mkstemp(suffix=".jpg", dir=directory)
        with os.fdopen(fd, "wb") as fh:
            fh.write(url.encode("utf-8"))
        return DownloadedItem(source_index=source_index, source_url=url, local_path=Path(path), size_bytes=len(url))

    def discard(self, item: DownloadedItem) -> None:
        self.discarded.append(item)
        item.local_path.unlink(missing_ok=True)


class FakeObjectStore(ObjectStore):
    def __init__(self, fail_on: Optional[Set[str]] = None, region: str = "eu-west-2", bucket: str = "listing-media"):
        self.fail_on = fail_on or set()
        self.region = region
        self.bucket = bucket
        self.objects: Dict[str, bytes] = {}

    async def put_file(self, item: DownloadedItem) -> StoredAddress:
        await asyncio.sleep(0)
        if item.source_url in self.fail_on:
            raise StorageError("S3 upload failed: AccessDenied", "AccessDenied")
        key = object_key_for(item.local_path)
        self.objects[key] = item.local_path.read_bytes()
        item.local_path.unlink()
        url = build_object_url(self.region, self.bucket, key)
        return StoredAddress(source_index=item.source_index, key=key, url=url)


class FakeRecordStore(RecordStore):
    def __init__(self, fail_create_at: Optional[Set[int]] = None, fail_update: bool = False):
        self.fail_create_at = fail_create_at or set()
        self.fail_update = fail_update
        self._ids = itertools.count(1)
        self.created: List[Tuple[str, str, str]] = []
        self.updates: List[Tuple[str, List[str]]] = []

    async def create_media_record(self, address: StoredAddress, parent_record_id: str) -> str:
        await asyncio.sleep(0)
        if address.source_index in self.fail_create_at:
            raise RecordStoreError("POST Media returned HTTP 422", status_code=422)
        record_id = f"recMedia{next(self._ids)}"
        self.created.append((record_id, address.url, parent_record_id))
        return record_id

    async def update_parent_record(self, parent_record_id: str, child_record_ids: List[str]) -> None:
        await asyncio.sleep(0)
        if self.fail_update:
            raise RecordStoreError("PATCH Listings returned HTTP 500", status_code=500)
        self.updates.append((parent_record_id, list(child_record_ids)))


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()
