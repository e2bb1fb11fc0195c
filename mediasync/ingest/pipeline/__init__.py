"""
Fan-out / fan-in ingestion pipeline.

- MediaIngestionPipeline: download -> upload -> create -> link for one request
- fan_out: runs one task per item with index-slotted results and sibling
  cancellation on the first failure
"""

from .fanout import fan_out
from .media_pipeline import MediaIngestionPipeline

__all__ = [
    "MediaIngestionPipeline",
    "fan_out",
]
