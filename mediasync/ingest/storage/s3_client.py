"""
S3 object store for downloaded media.

Uploads temp files with boto3 (on a store-owned thread pool so concurrent
uploads don't block the event loop), derives the public object URL and
removes the local file afterwards.
"""

import asyncio
import logging
import mimetypes
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from ..config.settings import MediaSyncSettings, get_cached_settings
from ..core.exceptions import StorageError
from ..core.interfaces import ObjectStore
from ..core.types import DownloadedItem, StoredAddress

logger = logging.getLogger(__name__)


def build_object_url(region: str, bucket: str, key: str) -> str:
    return f"https://s3.{region}.amazonaws.com/{bucket}/{key}"


def object_key_for(local_path: Path) -> str:
    """
    Object key for a temp file: its path relative to the working directory,
    with `/` separators (``screenshots/tmpab12cd.jpg``).

    Files outside the working directory fall back to
    ``{directory name}/{file name}``. Temp file names are unique, so keys are too.
    """
    try:
        return local_path.resolve().relative_to(Path.cwd().resolve()).as_posix()
    except ValueError:
        return f"{local_path.parent.name}/{local_path.name}" if local_path.parent.name else local_path.name


class S3ObjectStore(ObjectStore):
    """
    AWS S3 client wrapper used by the upload stage.

    One boto3 client is shared by every upload; boto3 clients are safe to
    use from multiple threads, but creating one is not, so creation is locked.
    Uploads run on a store-owned thread pool of ``upload_workers`` threads;
    uploads beyond that wait for a free thread.
    """

    def __init__(self, settings: Optional[MediaSyncSettings] = None, client: Optional[Any] = None):
        self.settings = settings or get_cached_settings()
        self.bucket = self.settings.aws_s3_bucket
        self.region = self.settings.aws_region
        self._client: Optional[Any] = client
        self._client_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.upload_workers, thread_name_prefix="s3-upload"
        )

        self.stats = {
            "uploads_attempted": 0,
            "uploads_successful": 0,
            "uploads_failed": 0,
            "bytes_uploaded": 0,
            "total_upload_time": 0.0,
        }

        logger.info(f"Initialized S3 object store for bucket: {self.bucket}")

    def _ensure_client(self) -> Any:
        if self._client is not None:
            return self._client

        with self._client_lock:
            if self._client is None:
                try:
                    if self.settings.localstack_endpoint:
                        self._client = boto3.client(  # type: ignore
                            "s3",
                            endpoint_url=self.settings.localstack_endpoint,
                            aws_access_key_id=self.settings.aws_access_key_id,
                            aws_secret_access_key=self.settings.aws_secret_access_key,
                            region_name=self.region,
                        )
                    else:
                        self._client = boto3.client("s3", region_name=self.region)  # type: ignore
                    logger.debug("Created new S3 client")

                except Exception as e:
                    logger.error(f"Failed to create S3 client: {e}")
                    raise StorageError(f"S3 client initialization failed: {e}") from e

        return self._client

    async def put_file(self, item: DownloadedItem) -> StoredAddress:
        """
        Upload one downloaded item and delete its local file.

        Raises:
            StorageError: If the file can't be read or the upload fails
        """
        start_time = time.time()
        self.stats["uploads_attempted"] += 1
        key = object_key_for(item.local_path)
        content_type = mimetypes.guess_type(item.local_path.name)[0] or "application/octet-stream"

        def _upload() -> int:
            client = self._ensure_client()
            size = item.local_path.stat().st_size
            with open(item.local_path, "rb") as body:
                client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=body,
                    ContentLength=size,
                    ContentType=content_type,
                )
            return size

        try:
            loop = asyncio.get_running_loop()
            size = await loop.run_in_executor(self._executor, _upload)

        except ClientError as e:
            self.stats["uploads_failed"] += 1
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(f"S3 upload failed with error {error_code}: {e}")
            raise StorageError(f"S3 upload failed: {error_code}", error_code, e) from e

        except NoCredentialsError as e:
            self.stats["uploads_failed"] += 1
            logger.error("S3 upload failed due to missing credentials")
            raise StorageError("S3 credentials not configured", original_error=e) from e

        except (BotoCoreError, OSError) as e:
            self.stats["uploads_failed"] += 1
            logger.error(f"S3 upload of {item.local_path} failed: {e}")
            raise StorageError(f"Upload error: {e}", original_error=e) from e

        url = build_object_url(self.region, self.bucket, key)
        item.local_path.unlink(missing_ok=True)

        upload_time = time.time() - start_time
        self.stats["uploads_successful"] += 1
        self.stats["bytes_uploaded"] += size
        self.stats["total_upload_time"] += upload_time

        logger.info(
            f"Uploaded {item.local_path} to s3://{self.bucket}/{key}",
            extra={
                "bucket": self.bucket,
                "key": key,
                "url": url,
                "size_bytes": size,
                "upload_time": upload_time,
            },
        )
        return StoredAddress(source_index=item.source_index, key=key, url=url)

    async def close(self) -> None:
        self._executor.shutdown(wait=False)
        logger.info("S3 object store closed")

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.copy()
        if stats["uploads_attempted"] > 0:
            stats["success_rate"] = stats["uploads_successful"] / stats["uploads_attempted"]
        else:
            stats["success_rate"] = 0.0
        stats["client_active"] = self._client is not None
        return stats

    async def health_check(self) -> Dict[str, Any]:
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(self._executor, self._ensure_client)
            return {"status": "healthy", "client_active": self._client is not None}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}
