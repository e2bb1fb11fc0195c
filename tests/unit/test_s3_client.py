"""Tests for the S3 object store using botocore's Stubber."""

import asyncio
import threading
import time
from pathlib import Path
from typing import List, Optional

import boto3
import pytest
from botocore.stub import ANY, Stubber
from conftest import make_settings

from mediasync.ingest.core.exceptions import StorageError
from mediasync.ingest.core.types import DownloadedItem
from mediasync.ingest.storage import S3ObjectStore, build_object_url, object_key_for
from mediasync.ingest.storage import s3_client as s3_module


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="eu-west-2",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def downloaded(settings) -> DownloadedItem:
    directory = Path(settings.download_directory)
    directory.mkdir(parents=True)
    path = directory / "tmpa1b2c3.jpg"
    path.write_bytes(b"jpeg-bytes")
    return DownloadedItem(source_index=2, source_url="http://a.test/img.jpg", local_path=path, size_bytes=10)


def test_build_object_url():
    assert build_object_url("us-east-1", "bucket", "screenshots/x.jpg") == (
        "https://s3.us-east-1.amazonaws.com/bucket/screenshots/x.jpg"
    )


def test_object_key_is_relative_to_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert object_key_for(Path("tmp123.jpg")) == "tmp123.jpg"
    assert object_key_for(Path("screenshots/tmp123.jpg")) == "screenshots/tmp123.jpg"
    assert object_key_for(tmp_path / "media" / "screenshots" / "tmp123.jpg") == "media/screenshots/tmp123.jpg"


def test_object_key_outside_working_directory_uses_directory_and_file_name(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert object_key_for(Path("/var/tmp/screenshots/tmp123.jpg")) == "screenshots/tmp123.jpg"


def test_put_file_uploads_and_removes_local_file(settings, s3_client, downloaded):
    store = S3ObjectStore(settings, client=s3_client)

    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "put_object",
            {"ETag": '"abc123"'},
            {
                "Bucket": "listing-media",
                "Key": "screenshots/tmpa1b2c3.jpg",
                "Body": ANY,
                "ContentLength": 10,
                "ContentType": "image/jpeg",
            },
        )
        address = asyncio.run(store.put_file(downloaded))
        stubber.assert_no_pending_responses()

    assert address.source_index == 2
    assert address.key == "screenshots/tmpa1b2c3.jpg"
    assert address.url == "https://s3.eu-west-2.amazonaws.com/listing-media/screenshots/tmpa1b2c3.jpg"
    assert not downloaded.local_path.exists()
    assert store.get_stats()["uploads_successful"] == 1
    assert store.get_stats()["bytes_uploaded"] == 10


def test_put_file_client_error_keeps_local_file(settings, s3_client, downloaded):
    store = S3ObjectStore(settings, client=s3_client)

    with Stubber(s3_client) as stubber:
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(StorageError) as excinfo:
            asyncio.run(store.put_file(downloaded))

    assert excinfo.value.error_code == "AccessDenied"
    assert downloaded.local_path.exists()
    assert store.get_stats()["uploads_failed"] == 1


def test_put_file_missing_local_file(settings, s3_client, downloaded):
    store = S3ObjectStore(settings, client=s3_client)
    downloaded.local_path.unlink()

    with pytest.raises(StorageError):
        asyncio.run(store.put_file(downloaded))


class _RecordingS3Client:
    """Stands in for a boto3 S3 client; ``put_object`` can wait on a barrier."""

    def __init__(self, barrier: Optional[threading.Barrier] = None):
        self.barrier = barrier
        self.keys: List[str] = []

    def put_object(self, **params):
        if self.barrier is not None:
            self.barrier.wait()
        self.keys.append(params["Key"])
        return {"ETag": '"abc123"'}


def _write_items(settings, count: int) -> List[DownloadedItem]:
    directory = Path(settings.download_directory)
    directory.mkdir(parents=True, exist_ok=True)
    items = []
    for index in range(count):
        path = directory / f"tmp{index}.jpg"
        path.write_bytes(b"jpeg-bytes")
        items.append(DownloadedItem(source_index=index, source_url=f"http://a.test/{index}", local_path=path))
    return items


async def _put_all(store: S3ObjectStore, items: List[DownloadedItem]):
    try:
        return await asyncio.gather(*(store.put_file(item) for item in items))
    finally:
        await store.close()


def test_concurrent_uploads_share_one_client(settings, monkeypatch):
    created = []
    fake_client = _RecordingS3Client()

    def slow_client(*args, **kwargs):
        created.append(kwargs)
        time.sleep(0.05)
        return fake_client

    monkeypatch.setattr(s3_module.boto3, "client", slow_client)
    store = S3ObjectStore(settings)

    addresses = asyncio.run(_put_all(store, _write_items(settings, 5)))

    assert len(created) == 1
    assert len(addresses) == 5
    assert len(fake_client.keys) == 5


def test_uploads_run_in_parallel_up_to_upload_workers(tmp_path):
    settings = make_settings(tmp_path, upload_workers=8)
    # Every put_object blocks until all eight are in flight at once
    fake_client = _RecordingS3Client(barrier=threading.Barrier(8, timeout=5))
    store = S3ObjectStore(settings, client=fake_client)

    addresses = asyncio.run(_put_all(store, _write_items(settings, 8)))

    assert len(addresses) == 8
    assert store.get_stats()["uploads_successful"] == 8
