import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from tablestreamer.api.routes import health, ingestion
from tablestreamer.core.config import settings
from tablestreamer.core.errors import IngestionError
from tablestreamer.core.logging import get_logger
from tablestreamer.services.ingestion_service import IngestionService


log = get_logger("app")

# Background task handle
_ingestion_task: Optional[asyncio.Task] = None


async def run_ingestion_pass(service: IngestionService) -> None:
    """Run one ingestion pass for every configured table."""
    log.info("Starting scheduled ingestion pass...")
    try:
        report = await service.run()
    except IngestionError as exc:
        log.error(f"Ingestion pass could not start: {exc}")
        return

    for outcome in report.outcomes:
        if outcome.succeeded:
            log.info(f"Ingestion {outcome.table_id}: {outcome.status.value}, {outcome.records_written} records")
        else:
            log.error(f"Ingestion {outcome.table_id}: failed - {outcome.error_type}: {outcome.error_message}")
    log.info(f"Ingestion pass completed: {report.status.value}")


async def scheduled_ingestion_task(service: IngestionService, interval: float) -> None:
    """Continuous mode: one pass every ``interval`` seconds."""
    log.info(f"Scheduled ingestion task started (interval: {interval}s)")
    while True:
        try:
            await run_ingestion_pass(service)
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            log.info("Scheduled ingestion task cancelled")
            break
        except Exception as exc:  # noqa: BLE001
            log.exception(f"Scheduled ingestion task error: {exc}")
            # Continue running despite errors
            await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _ingestion_task

    log.info(f"Starting application in {settings.ENV.upper()} mode")
    service = IngestionService()
    app.state.ingestion_service = service

    if settings.INGESTION_INTERVAL_SECONDS:
        _ingestion_task = asyncio.create_task(scheduled_ingestion_task(service, settings.INGESTION_INTERVAL_SECONDS))
    else:
        log.info("Continuous ingestion is disabled (INGESTION_INTERVAL_SECONDS unset)")

    yield

    log.info("Shutting down services...")
    if _ingestion_task:
        log.info("Cancelling scheduled ingestion task...")
        _ingestion_task.cancel()
        try:
            await _ingestion_task
        except asyncio.CancelledError:
            pass
        _ingestion_task = None

    log.info("Application shutdown complete")


# Configure FastAPI based on environment
app = FastAPI(
    title="tablestreamer",
    description="Multi-table streaming ingestion with layered per-table configuration",
    version="0.1.0",
    lifespan=lifespan,
    # Disable docs in production for security
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    debug=settings.is_development,
)


app.include_router(health.router)
app.include_router(ingestion.router)
