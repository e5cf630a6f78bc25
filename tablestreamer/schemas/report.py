"""Per-table outcomes and the consolidated run report"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PipelineState(str, Enum):
    INIT = "INIT"
    FETCH_CHECKPOINT = "FETCH_CHECKPOINT"
    PULL_BATCH = "PULL_BATCH"
    TRANSFORM = "TRANSFORM"
    WRITE = "WRITE"
    SYNC_CATALOG = "SYNC_CATALOG"
    COMMIT_CHECKPOINT = "COMMIT_CHECKPOINT"
    DONE = "DONE"
    ERROR = "ERROR"


class TableStatus(str, Enum):
    COMMITTED = "committed"
    NO_NEW_DATA = "no_new_data"
    FAILED = "failed"


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"


class TableOutcome(BaseModel):
    table_id: str
    status: TableStatus
    records_written: int = 0
    records_skipped: int = 0
    checkpoint_before: Optional[str] = None
    checkpoint_after: Optional[str] = None
    instant: Optional[str] = None
    partitions: List[str] = Field(default_factory=list)
    failed_state: Optional[PipelineState] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    catalog_error: Optional[str] = None
    transform_errors: List[str] = Field(default_factory=list)
    states: List[PipelineState] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status != TableStatus.FAILED


class RunReport(BaseModel):
    run_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: RunStatus = RunStatus.SUCCESS
    outcomes: List[TableOutcome] = Field(default_factory=list)

    def outcome(self, table_id: str) -> Optional[TableOutcome]:
        for outcome in self.outcomes:
            if outcome.table_id == table_id:
                return outcome
        return None

    @property
    def failed_tables(self) -> List[str]:
        return [o.table_id for o in self.outcomes if not o.succeeded]

    def summary(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in TableStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts
