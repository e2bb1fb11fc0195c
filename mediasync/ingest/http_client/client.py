"""
HTTP download client for the ingestion pipeline.

Streams source media into uniquely-named temp files. A single session is
shared across every concurrent download of a stage.
"""

import asyncio
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout, TCPConnector

from ..config.settings import MediaSyncSettings, get_cached_settings
from ..core.exceptions import ContentTooLargeError, DownloadError
from ..core.interfaces import MediaDownloader
from ..core.types import DownloadedItem

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class MediaHTTPClient(MediaDownloader):
    """
    Downloads source URLs into a destination directory.

    Parallelism is not capped: every download of a request runs at once and
    writes to its own temp file, so the directory needs no locking.
    """

    def __init__(self, settings: Optional[MediaSyncSettings] = None):
        self.settings = settings or get_cached_settings()
        self._session: Optional[aiohttp.ClientSession] = None

        self.stats = {
            "requests_made": 0,
            "requests_successful": 0,
            "requests_failed": 0,
            "bytes_downloaded": 0,
            "total_response_time": 0.0,
        }

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = TCPConnector(limit=0, ttl_dns_cache=300, enable_cleanup_closed=True)
            timeout = ClientTimeout(total=self.settings.request_timeout, connect=10)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
                headers={"User-Agent": self.settings.user_agent, "Accept": "*/*"},
                raise_for_status=False,
            )
            logger.debug("Created new HTTP session")
        return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None
        logger.info("HTTP client closed")

    async def download(self, source_index: int, url: str, directory: Path) -> DownloadedItem:
        """
        Fetch one URL into a new temp file inside ``directory``.

        Raises:
            DownloadError: On transport errors, HTTP status >= 400 or filesystem errors
        """
        start_time = time.time()
        self.stats["requests_made"] += 1
        local_path: Optional[Path] = None
        completed = False

        try:
            session = await self._ensure_session()
            async with session.get(url) as response:
                if response.status >= 400:
                    raise DownloadError(url, f"HTTP {response.status} error for {url}", status_code=response.status)
                self._check_declared_length(response, url)

                directory.mkdir(parents=True, exist_ok=True)
                fd, path_str = tempfile.mkstemp(suffix=self.settings.download_suffix, dir=directory)
                local_path = Path(path_str)
                size = await self._stream_to_file(response, fd, url)

            item = DownloadedItem(source_index=source_index, source_url=url, local_path=local_path, size_bytes=size)
            completed = True

        except DownloadError:
            self.stats["requests_failed"] += 1
            raise

        except (ClientError, asyncio.TimeoutError) as e:
            self.stats["requests_failed"] += 1
            raise DownloadError(url, f"HTTP request failed: {e}", original_error=e) from e

        except OSError as e:
            self.stats["requests_failed"] += 1
            raise DownloadError(url, f"Could not write download for {url}: {e}", original_error=e) from e

        finally:
            if not completed and local_path is not None:
                local_path.unlink(missing_ok=True)

        response_time = time.time() - start_time
        self.stats["requests_successful"] += 1
        self.stats["bytes_downloaded"] += item.size_bytes
        self.stats["total_response_time"] += response_time

        logger.info(
            f"Downloaded {url} to {item.local_path}",
            extra={
                "url": url,
                "source_index": source_index,
                "local_path": str(item.local_path),
                "size_bytes": item.size_bytes,
                "response_time": response_time,
            },
        )
        return item

    def _check_declared_length(self, response: aiohttp.ClientResponse, url: str) -> None:
        content_length = response.headers.get("content-length")
        if content_length and content_length.isdigit():
            length = int(content_length)
            if length > self.settings.max_content_length:
                raise ContentTooLargeError(url, length, self.settings.max_content_length)

    async def _stream_to_file(self, response: aiohttp.ClientResponse, fd: int, url: str) -> int:
        written = 0
        with os.fdopen(fd, "wb") as fh:
            async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                written += len(chunk)
                if written > self.settings.max_content_length:
                    raise ContentTooLargeError(url, written, self.settings.max_content_length)
                fh.write(chunk)
        return written

    def discard(self, item: DownloadedItem) -> None:
        item.local_path.unlink(missing_ok=True)

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.copy()
        if stats["requests_made"] > 0:
            stats["success_rate"] = stats["requests_successful"] / stats["requests_made"]
        else:
            stats["success_rate"] = 0
        stats["session_active"] = self._session is not None and not self._session.closed
        return stats

    async def health_check(self) -> Dict[str, Any]:
        try:
            session = await self._ensure_session()
            return {"status": "healthy", "session_active": not session.closed}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}
