"""Ingestion routes - Trigger runs, inspect checkpoints and run history."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from tablestreamer.api.deps import get_service
from tablestreamer.core.errors import TableConfigError
from tablestreamer.core.logging import get_logger
from tablestreamer.schemas.api import CheckpointOut, RunRequest, RunResponse, TableRunOut
from tablestreamer.schemas.report import RunStatus
from tablestreamer.services.ingestion_service import IngestionService

router = APIRouter(prefix="/ingestion", tags=["ingestion"])
log = get_logger("ingestion_routes")


@router.post("/run", response_model=RunResponse)
async def trigger_run(
    payload: Optional[RunRequest] = None,
    service: IngestionService = Depends(get_service),
):
    """
    Run one ingestion pass.

    For every requested table (default: `ingestion.tablesToBeIngested`):
    1. Resolve its layered configuration
    2. Pull a batch from its source after the last checkpoint
    3. Transform, write and sync the catalog
    4. Advance its checkpoint

    A table failure is reported per table; `success` is true only when the run
    status is `success`.
    """
    tables = payload.tables if payload else None
    log.info(f"Ingestion triggered for tables: {tables or 'all configured'}")

    try:
        report = await service.run(tables)
    except TableConfigError as exc:
        log.error(f"Global configuration could not be resolved: {exc}")
        return RunResponse(success=False, error=str(exc))

    return RunResponse(success=report.status == RunStatus.SUCCESS, report=report)


@router.get("/checkpoints/{table_id}", response_model=CheckpointOut)
def get_checkpoint(table_id: str, service: IngestionService = Depends(get_service)):
    """Last committed checkpoint of a table."""
    record = service.checkpoint(table_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No checkpoint for {table_id}")
    return CheckpointOut(**record.model_dump())


@router.get("/runs", response_model=list[TableRunOut])
def list_runs(
    limit: int = Query(50, ge=1, le=500),
    table_id: Optional[str] = None,
    service: IngestionService = Depends(get_service),
):
    """Most recent table runs, newest first."""
    return service.recent_runs(limit=limit, table_id=table_id)
