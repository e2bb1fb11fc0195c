"""
Logging utilities for the ingestion service.

structlog events and plain ``logging.getLogger(__name__)`` records are
rendered by the same handler, so ``extra=`` fields from the clients show up
next to the pipeline's stage events.
"""

import logging
import sys
from typing import Any, List

import structlog
from structlog.typing import Processor


def _shared_processors(json_logs: bool) -> List[Processor]:
    timestamp = "iso" if json_logs else "%Y-%m-%d %H:%M:%S"
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt=timestamp),
        structlog.processors.StackInfoRenderer(),
    ]


def setup_ingest_logger(name: str, level: str = "INFO", json_logs: bool = True) -> structlog.BoundLogger:
    """
    Set up structured logging for the service.

    Replaces the root handler, so calling it again (server lifespan after
    the CLI) just reconfigures.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Whether to output JSON format logs

    Returns:
        Configured structlog logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    shared = _shared_processors(json_logs)

    if json_logs:
        renderer: List[Processor] = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderer = [structlog.dev.ConsoleRenderer()]

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[*shared, structlog.stdlib.ExtraAdder()],
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderer],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(name)


def get_ingest_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


class IngestLoggerAdapter:
    """
    Binds the parent record id (and any extra context) to every stage event
    of one ingestion request.
    """

    def __init__(self, logger: structlog.BoundLogger, parent_record_id: str, **context: Any):
        self.logger = logger.bind(parent_record_id=parent_record_id, **context)
        self.parent_record_id = parent_record_id

    def log_stage_started(self, stage: str, **kwargs: Any) -> None:
        self.logger.info("stage_started", stage=stage, **kwargs)

    def log_stage_completed(self, stage: str, duration_ms: float, **kwargs: Any) -> None:
        self.logger.info("stage_completed", stage=stage, duration_ms=round(duration_ms, 2), **kwargs)

    def log_stage_failed(
        self, stage: str, source_index: int, error_type: str, error_message: str, **kwargs: Any
    ) -> None:
        self.logger.error(
            "stage_failed",
            stage=stage,
            source_index=source_index,
            error_type=error_type,
            error_message=error_message,
            **kwargs,
        )

    def log_ingestion_completed(self, record_ids: List[str], patches_issued: int, **kwargs: Any) -> None:
        self.logger.info(
            "ingestion_completed",
            record_count=len(record_ids),
            record_ids=record_ids,
            patches_issued=patches_issued,
            **kwargs,
        )
