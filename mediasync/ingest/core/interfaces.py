"""
Capability interfaces consumed by the ingestion pipeline.

Each stage talks to exactly one of these, so tests and alternative backends
can substitute their own implementations.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List

from .types import DownloadedItem, StoredAddress


class MediaDownloader(ABC):
    """Fetches a source URL into a uniquely-named local file."""

    @abstractmethod
    async def download(self, source_index: int, url: str, directory: Path) -> DownloadedItem:
        pass

    @abstractmethod
    def discard(self, item: DownloadedItem) -> None:
        """Remove the local file of an item, ignoring a file that is already gone."""
        pass

    async def close(self) -> None:
        pass

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}


class ObjectStore(ABC):
    """Puts a local file into durable storage and returns its address."""

    @abstractmethod
    async def put_file(self, item: DownloadedItem) -> StoredAddress:
        pass

    async def close(self) -> None:
        pass

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}


class RecordStore(ABC):
    """Creates child media records and links them onto a parent record."""

    @abstractmethod
    async def create_media_record(self, address: StoredAddress, parent_record_id: str) -> str:
        pass

    @abstractmethod
    async def update_parent_record(self, parent_record_id: str, child_record_ids: List[str]) -> None:
        pass

    async def close(self) -> None:
        pass

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}
