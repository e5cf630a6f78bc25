from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tablestreamer.schemas.report import RunReport


class HealthResponse(BaseModel):
    database: str
    # "ok", "invalid: <reason>" or "unknown" when the database is down
    config: str
    tables_configured: int = 0
    last_run_id: str | None = None
    last_run_failed_tables: list[str] = Field(default_factory=list)


class RunRequest(BaseModel):
    # None = every table listed in the global config
    tables: Optional[list[str]] = None


class RunResponse(BaseModel):
    success: bool
    report: RunReport | None = None
    error: str | None = None


class CheckpointOut(BaseModel):
    table_id: str
    marker: str
    committed_at: datetime


class TableRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    run_id: str
    table_id: str
    status: str
    records_written: int
    records_skipped: int
    checkpoint_before: str | None = None
    checkpoint_after: str | None = None
    failed_state: str | None = None
    error_type: str | None = None
    error_message: str | None = None
    catalog_error: str | None = None
    started_at: datetime
    ended_at: datetime | None
