import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..ingest import __version__
from ..ingest.config.settings import get_cached_settings
from ..ingest.core.exceptions import IngestError, InvalidRequestError, StageFailedError
from ..ingest.utils.logging import setup_ingest_logger
from ..schema import ErrorResponse, HealthStatus
from .routers.ingest import initialize_pipeline, pipeline_component_health, shutdown_pipeline
from .routers.ingest import router as ingest_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    settings = get_cached_settings()
    setup_ingest_logger("mediasync", level=settings.log_level, json_logs=settings.json_logs)
    await initialize_pipeline(settings)
    yield
    # Shutdown
    await shutdown_pipeline()


app = FastAPI(title="mediasync", version=__version__, lifespan=lifespan)

app.include_router(ingest_router)


@app.exception_handler(RequestValidationError)
async def handle_malformed_body(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="malformed request body", detail=str(exc.errors())).model_dump(),
    )


@app.exception_handler(IngestError)
async def handle_ingest_error(_: Request, exc: IngestError) -> JSONResponse:
    status_code, stage = 500, None
    if isinstance(exc, InvalidRequestError):
        status_code = 400
    elif isinstance(exc, StageFailedError):
        status_code, stage = 502, exc.stage.value

    logger.error(f"Ingestion failed ({exc.error_type.value}): {exc}")
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=exc.error_type.value, detail=str(exc), stage=stage).model_dump(),
    )


@app.get("/")
async def read_root() -> str:
    return "Hello World"


@app.get("/health")
async def health_check() -> HealthStatus:
    components = await pipeline_component_health()
    if not components:
        return HealthStatus(status="degraded", version=__version__)
    status = "ok" if all(value == "ok" for value in components.values()) else "degraded"
    return HealthStatus(status=status, version=__version__, components=components)
