"""Ingestion error taxonomy"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence


class IngestionError(Exception):
    """Base class for every error raised by the ingestion engine."""


class TableConfigError(IngestionError):
    """Configuration problem attributable to a single table.

    The orchestrator isolates these to the table that raised them.
    """

    def __init__(self, message: str, table_id: Optional[str] = None):
        self.table_id = table_id
        super().__init__(message)

    def for_table(self, table_id: str) -> "TableConfigError":
        self.table_id = table_id
        return self

    def __str__(self) -> str:
        message = super().__str__()
        if self.table_id:
            return f"[{self.table_id}] {message}"
        return message


class MissingIncludeError(TableConfigError):
    def __init__(self, path: str, included_from: Optional[str] = None, table_id: Optional[str] = None):
        self.path = path
        self.included_from = included_from
        if included_from:
            message = f"Included file not found: {path} (included from {included_from})"
        else:
            message = f"Config file not found: {path}"
        super().__init__(message, table_id)


class CyclicIncludeError(TableConfigError):
    def __init__(self, cycle: Sequence[str], table_id: Optional[str] = None):
        self.cycle: List[str] = list(cycle)
        super().__init__("Cyclic include: " + " -> ".join(self.cycle), table_id)


class InvalidTableConfigError(TableConfigError):
    def __init__(self, table_id: str, fields: Iterable[str], reason: str = "missing or invalid fields"):
        self.fields: List[str] = sorted(set(fields))
        self.reason = reason
        super().__init__(f"{reason}: {', '.join(self.fields)}", table_id)


class RecordTransformError(IngestionError):
    """A record could not be mapped to the target schema or keyed."""

    def __init__(self, message: str, record: Optional[dict] = None):
        self.record = record
        super().__init__(message)


class SchemaCompatibilityError(RecordTransformError):
    """Target schema cannot be read from the source schema."""


class SourcePullFailure(IngestionError):
    """Transient failure pulling from a source; the pull is retryable."""


class WriteFailure(IngestionError):
    pass


class CatalogSyncFailure(IngestionError):
    pass


class CheckpointStoreFailure(IngestionError):
    pass


class PipelineCancelled(IngestionError):
    pass
