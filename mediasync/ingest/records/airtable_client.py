"""
Airtable client for media and listing records.

Creates one Media record per stored item and writes the resulting record ids
onto the Listings (parent) record. Table and field names come from settings.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout
from pydantic import ValidationError

from ...schema.airtable import AirtableRecordsResponse
from ..config.settings import MediaSyncSettings, get_cached_settings
from ..core.exceptions import ConfigurationError, RecordStoreError
from ..core.interfaces import RecordStore
from ..core.types import StoredAddress

logger = logging.getLogger(__name__)


def build_media_record_payload(address_url: str, parent_record_id: str, settings: MediaSyncSettings) -> Dict[str, Any]:
    """Create-request body for one Media record linked to its parent."""
    fields: Dict[str, Any] = {settings.media_attachment_field: [{"url": address_url}]}
    if settings.media_link_field:
        fields[settings.media_link_field] = address_url
    fields[settings.media_parent_field] = [parent_record_id]
    return {"records": [{"fields": fields}]}


def build_parent_update_payload(
    parent_record_id: str, child_record_ids: List[str], settings: MediaSyncSettings
) -> Dict[str, Any]:
    return {
        "records": [
            {
                "id": parent_record_id,
                "fields": {settings.listing_media_field: list(child_record_ids)},
            }
        ]
    }


class AirtableRecordStore(RecordStore):
    """
    Record store backed by the Airtable REST API.

    The session is shared by all concurrent create and update calls.
    """

    def __init__(self, settings: Optional[MediaSyncSettings] = None):
        self.settings = settings or get_cached_settings()
        if not self.settings.airtable_token:
            raise ConfigurationError("Airtable token not configured (AIRTABLE_TOKEN)")
        self._session: Optional[aiohttp.ClientSession] = None

        self.stats = {
            "records_created": 0,
            "parent_updates": 0,
            "requests_failed": 0,
        }

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.settings.request_timeout),
                headers={"Authorization": f"Bearer {self.settings.airtable_token}"},
            )
        return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def create_media_record(self, address: StoredAddress, parent_record_id: str) -> str:
        """
        Create one Media record pointing at a stored item.

        Returns:
            Id of the created record

        Raises:
            RecordStoreError: On transport errors, non-2xx responses or an empty response
        """
        url = self.settings.table_url(self.settings.media_table)
        payload = build_media_record_payload(address.url, parent_record_id, self.settings)

        body = await self._send("POST", url, payload, content_type="application/json", parse=True)
        try:
            parsed = AirtableRecordsResponse.model_validate(body)
        except ValidationError as e:
            self.stats["requests_failed"] += 1
            raise RecordStoreError(f"Unexpected create response from {url}: {e}", original_error=e) from e

        if not parsed.records:
            self.stats["requests_failed"] += 1
            raise RecordStoreError(f"Create response from {url} contained no records")

        record_id = parsed.records[0].id
        self.stats["records_created"] += 1
        logger.info(
            f"Created Airtable record with id: {record_id}",
            extra={"record_id": record_id, "parent_record_id": parent_record_id, "address": address.url},
        )
        return record_id

    async def update_parent_record(self, parent_record_id: str, child_record_ids: List[str]) -> None:
        """
        Set the parent's media field to ``child_record_ids``.

        The response body is released without being parsed.
        """
        url = self.settings.table_url(self.settings.listing_table)
        payload = build_parent_update_payload(parent_record_id, child_record_ids, self.settings)

        await self._send("PATCH", url, payload, content_type="application/json; charset=UTF-8", parse=False)
        self.stats["parent_updates"] += 1
        logger.info(
            f"Updated parent record {parent_record_id}",
            extra={"parent_record_id": parent_record_id, "child_record_ids": child_record_ids},
        )

    async def _send(self, method: str, url: str, payload: Dict[str, Any], content_type: str, parse: bool) -> Any:
        session = await self._ensure_session()
        start_time = time.time()

        try:
            async with session.request(method, url, json=payload, headers={"Content-Type": content_type}) as response:
                if response.status >= 400:
                    detail = await response.text()
                    raise RecordStoreError(
                        f"{method} {url} returned HTTP {response.status}: {detail[:500]}",
                        status_code=response.status,
                    )
                if parse:
                    return await response.json(content_type=None)
                await response.release()
                return None

        except RecordStoreError:
            self.stats["requests_failed"] += 1
            raise

        except (ClientError, asyncio.TimeoutError, ValueError) as e:
            self.stats["requests_failed"] += 1
            raise RecordStoreError(f"{method} {url} failed: {e}", original_error=e) from e

        finally:
            logger.debug(f"{method} {url} took {time.time() - start_time:.3f}s")

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = self.stats.copy()
        stats["session_active"] = self._session is not None and not self._session.closed
        return stats

    async def health_check(self) -> Dict[str, Any]:
        try:
            session = await self._ensure_session()
            return {"status": "healthy", "session_active": not session.closed}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e)}
