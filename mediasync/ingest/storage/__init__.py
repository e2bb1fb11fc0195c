"""
Object storage for downloaded media.
"""

from .s3_client import S3ObjectStore, build_object_url, object_key_for

__all__ = [
    "S3ObjectStore",
    "build_object_url",
    "object_key_for",
]
