"""
Record store clients for media and listing records.
"""

from .airtable_client import AirtableRecordStore, build_media_record_payload, build_parent_update_payload

__all__ = [
    "AirtableRecordStore",
    "build_media_record_payload",
    "build_parent_update_payload",
]
