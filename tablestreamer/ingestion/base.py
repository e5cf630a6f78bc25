"""Abstract source connector interface for ingestion."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class SourceBatch(BaseModel):
    """Records pulled from a source plus the marker that follows them."""

    # Raw, unvalidated; records that are not objects are rejected in TRANSFORM
    records: List[Any] = Field(default_factory=list)
    checkpoint: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.records


class SourceConnector(ABC):
    """Pulls bounded batches of raw records from one table's source.

    ``pull`` must be safe to retry with the same checkpoint: it only reads.
    Checkpoint markers are opaque strings owned by the connector.
    """

    name: str

    @abstractmethod
    async def pull(self, checkpoint: Optional[str], max_records: int) -> SourceBatch:
        """Up to ``max_records`` records after ``checkpoint`` (``None`` = source default)."""

    async def close(self) -> None:
        """Release connector resources."""


class MalformedRecord(BaseModel):
    """A source line that could not be read as a record.

    Carried through PULL_BATCH so the transform error policy decides its fate.
    """

    raw: str
    source_file: str
    line: int
