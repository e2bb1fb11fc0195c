"""
Media ingestion for listing records.

Downloads screenshots and attachments, stores them in S3 and links them to
Airtable records through a concurrent fan-out / fan-in pipeline.
"""

from .utils.logging import setup_ingest_logger

__version__ = "0.1.0"
__all__ = ["setup_ingest_logger"]
