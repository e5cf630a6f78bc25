"""Per-table checkpoint stores"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tablestreamer.core.errors import CheckpointStoreFailure
from tablestreamer.models.checkpoints import TableCheckpoint

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class CheckpointRecord(BaseModel):
    table_id: str
    marker: str
    committed_at: datetime


class CheckpointStore(ABC):
    """Durable ``table id -> marker`` mapping, one writer per key."""

    @abstractmethod
    def get(self, table_id: str) -> Optional[CheckpointRecord]:
        """Last committed checkpoint, ``None`` if the table never committed."""

    @abstractmethod
    def put(self, table_id: str, marker: str) -> CheckpointRecord:
        """Persist ``marker`` as the table's checkpoint."""

    @abstractmethod
    def delete(self, table_id: str) -> None:
        """Forget the table's checkpoint."""

    @abstractmethod
    def list(self) -> List[CheckpointRecord]:
        """Every stored checkpoint."""


class InMemoryCheckpointStore(CheckpointStore):
    """Checkpoints held for the lifetime of the object."""

    def __init__(self):
        self._records: Dict[str, CheckpointRecord] = {}

    def get(self, table_id):
        return self._records.get(table_id)

    def put(self, table_id, marker):
        record = CheckpointRecord(table_id=table_id, marker=marker, committed_at=datetime.now(timezone.utc))
        self._records[table_id] = record
        return record

    def delete(self, table_id):
        self._records.pop(table_id, None)

    def list(self):
        return [self._records[key] for key in sorted(self._records)]


class FileCheckpointStore(CheckpointStore):
    """One JSON document per table in ``checkpoint_dir``"""

    def __init__(self, checkpoint_dir: str = "checkpoints"):
        self.checkpoint_dir = Path(checkpoint_dir)
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, table_id: str) -> Path:
        return self.checkpoint_dir / f"{_UNSAFE_CHARS.sub('_', table_id)}.json"

    def get(self, table_id):
        checkpoint_file = self._path(table_id)
        if not checkpoint_file.exists():
            return None
        try:
            with open(checkpoint_file, "r") as f:
                data = json.load(f)
            return CheckpointRecord(
                table_id=data["table_id"],
                marker=data["marker"],
                committed_at=datetime.fromisoformat(data["timestamp"]),
            )
        except (OSError, ValueError, KeyError) as exc:
            raise CheckpointStoreFailure(f"Unreadable checkpoint {checkpoint_file}: {exc}") from exc

    def put(self, table_id, marker):
        record = CheckpointRecord(table_id=table_id, marker=marker, committed_at=datetime.now(timezone.utc))
        checkpoint_file = self._path(table_id)
        data = {"table_id": table_id, "marker": marker, "timestamp": record.committed_at.isoformat()}
        tmp = checkpoint_file.with_suffix(".json.tmp")
        try:
            with open(tmp, "w") as f:
                json.dump(data, f, indent=2)
            tmp.replace(checkpoint_file)
        except OSError as exc:
            raise CheckpointStoreFailure(f"Cannot write checkpoint {checkpoint_file}: {exc}") from exc
        return record

    def delete(self, table_id):
        checkpoint_file = self._path(table_id)
        if checkpoint_file.exists():
            checkpoint_file.unlink()

    def list(self):
        records = []
        for path in sorted(self.checkpoint_dir.glob("*.json")):
            with open(path, "r") as f:
                data = json.load(f)
            records.append(self.get(data["table_id"]))
        return records


class SqlCheckpointStore(CheckpointStore):
    """Checkpoints in the ``table_checkpoints`` table; one short session per call."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    @staticmethod
    def _to_record(row: TableCheckpoint) -> CheckpointRecord:
        committed_at = row.committed_at
        if committed_at.tzinfo is None:
            committed_at = committed_at.replace(tzinfo=timezone.utc)
        return CheckpointRecord(table_id=row.table_id, marker=row.marker, committed_at=committed_at)

    def get(self, table_id):
        try:
            with self.session_factory() as db:
                row = db.get(TableCheckpoint, table_id)
                return self._to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise CheckpointStoreFailure(f"Cannot read checkpoint for {table_id}: {exc}") from exc

    def put(self, table_id, marker):
        now = datetime.now(timezone.utc)
        try:
            with self.session_factory() as db:
                row = db.get(TableCheckpoint, table_id)
                if not row:
                    row = TableCheckpoint(table_id=table_id, marker=marker, committed_at=now)
                else:
                    row.marker = marker
                    row.committed_at = now
                db.add(row)
                db.commit()
        except SQLAlchemyError as exc:
            raise CheckpointStoreFailure(f"Cannot write checkpoint for {table_id}: {exc}") from exc
        return CheckpointRecord(table_id=table_id, marker=marker, committed_at=now)

    def delete(self, table_id):
        with self.session_factory() as db:
            row = db.get(TableCheckpoint, table_id)
            if row:
                db.delete(row)
                db.commit()

    def list(self):
        with self.session_factory() as db:
            rows = db.scalars(select(TableCheckpoint).order_by(TableCheckpoint.table_id)).all()
            return [self._to_record(row) for row in rows]
