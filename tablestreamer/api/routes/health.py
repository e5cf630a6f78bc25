"""Health routes - Liveness plus ingestion readiness."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tablestreamer.api.deps import get_db, get_service
from tablestreamer.core.errors import TableConfigError
from tablestreamer.schemas.api import HealthResponse
from tablestreamer.schemas.report import TableStatus
from tablestreamer.services.ingestion_service import IngestionService

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
def health(
    response: Response,
    db: Session = Depends(get_db),
    service: IngestionService = Depends(get_service),
):
    """
    Service health for load balancers and operators.

    Reports database connectivity, whether the global property file resolves
    (and how many tables it schedules) and which tables failed in the latest run.
    Returns 503 only when the database is unreachable; a broken config is reported
    but the process is still alive.
    """
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        response.status_code = 503
        return HealthResponse(database=f"down: {e}", config="unknown")

    try:
        tables = service.configured_tables()
        config_status = "ok"
    except TableConfigError as exc:
        tables = []
        config_status = f"invalid: {exc}"

    last_run = service.last_run()
    return HealthResponse(
        database="ok",
        config=config_status,
        tables_configured=len(tables),
        last_run_id=last_run[0].run_id if last_run else None,
        last_run_failed_tables=[row.table_id for row in last_run if row.status == TableStatus.FAILED.value],
    )


@router.get("/ready")
def readiness(response: Response, service: IngestionService = Depends(get_service)):
    """
    Readiness check: a run could start right now.

    Needs the database and a global property file whose include chain resolves.
    """
    now = datetime.now(timezone.utc).isoformat()
    try:
        with service.session_factory() as db:
            db.execute(text("SELECT 1"))
        tables = service.configured_tables()
    except (SQLAlchemyError, TableConfigError) as e:
        response.status_code = 503
        return {"status": "not_ready", "error": str(e), "timestamp": now}
    return {"status": "ready", "tables": tables, "timestamp": now}
