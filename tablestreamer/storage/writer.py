"""Storage write path: atomic per-batch commits under a table base path."""

from __future__ import annotations

import asyncio
import json
import os
import shutil
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from tablestreamer.core.errors import WriteFailure
from tablestreamer.core.logging import get_logger
from tablestreamer.schemas.table_spec import TableIngestionSpec

log = get_logger("storage.writer")

RECORD_KEY_FIELD = "_record_key"
PARTITION_PATH_FIELD = "_partition_path"
COMMIT_TIME_FIELD = "_commit_time"

STAGING_DIR = ".staging"
COMMITS_DIR = ".commits"


class WriteResult(BaseModel):
    instant: str
    records_written: int
    partitions: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)


class StorageWriter(ABC):
    """Persists one transformed batch. All-or-nothing: on failure nothing is visible."""

    @abstractmethod
    async def write(self, spec: TableIngestionSpec, records: List[Dict[str, Any]], instant: str) -> WriteResult:
        """Write ``records`` as commit ``instant``; raise ``WriteFailure`` on error."""


class LocalTableWriter(StorageWriter):
    """JSON-lines files per partition on the local filesystem.

    Files are staged under ``.staging/<instant>``, moved into their partitions and
    then sealed by ``.commits/<instant>.commit``. A failure at any step removes
    whatever was already moved, so readers that trust only sealed commits never
    see a partial batch.
    """

    async def write(self, spec, records, instant):
        return await asyncio.to_thread(self._write, Path(spec.target_base_path), records, instant)

    def _write(self, base: Path, records: List[Dict[str, Any]], instant: str) -> WriteResult:
        by_partition: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for record in records:
            by_partition[record.get(PARTITION_PATH_FIELD, "")].append(record)

        root = base.resolve()
        for partition in by_partition:
            if partition and not (root / partition).resolve().is_relative_to(root):
                raise WriteFailure(f"Partition path {partition!r} escapes table base path {base}")

        staging = base / STAGING_DIR / instant
        moved: List[Path] = []
        files: List[str] = []
        try:
            staged = []
            for partition, rows in sorted(by_partition.items()):
                relative = Path(partition) / f"{instant}.jsonl" if partition else Path(f"{instant}.jsonl")
                target = staging / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                with target.open("w", encoding="utf-8") as f:
                    for row in rows:
                        f.write(json.dumps({COMMIT_TIME_FIELD: instant, **row}, default=str))
                        f.write("\n")
                staged.append((target, base / relative))
                files.append(relative.as_posix())

            for source, destination in staged:
                destination.parent.mkdir(parents=True, exist_ok=True)
                os.replace(source, destination)
                moved.append(destination)

            commits = base / COMMITS_DIR
            commits.mkdir(parents=True, exist_ok=True)
            marker = commits / f"{instant}.commit"
            tmp = commits / f"{instant}.commit.tmp"
            tmp.write_text(
                json.dumps({"instant": instant, "records": len(records), "files": files}, indent=2),
                encoding="utf-8",
            )
            os.replace(tmp, marker)
        except OSError as exc:
            for path in moved:
                path.unlink(missing_ok=True)
            raise WriteFailure(f"Write of commit {instant} to {base} failed: {exc}") from exc
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        partitions = sorted(by_partition)
        log.info(f"Committed {instant} to {base}: {len(records)} records in {len(partitions)} partition(s)")
        return WriteResult(instant=instant, records_written=len(records), partitions=partitions, files=files)


def read_committed(base_path: str) -> List[Dict[str, Any]]:
    """Every record of every sealed commit under ``base_path``, in commit order."""
    base = Path(base_path)
    commits = base / COMMITS_DIR
    if not commits.is_dir():
        return []
    rows: List[Dict[str, Any]] = []
    for marker in sorted(commits.glob("*.commit")):
        meta = json.loads(marker.read_text(encoding="utf-8"))
        for relative in meta["files"]:
            with (base / relative).open("r", encoding="utf-8") as f:
                rows.extend(json.loads(line) for line in f if line.strip())
    return rows
