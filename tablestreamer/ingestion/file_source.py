"""Directory sources: JSON-lines and CSV files consumed in file-name order."""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from tablestreamer.core.errors import SourcePullFailure
from tablestreamer.core.logging import get_logger
from tablestreamer.plugins.schema_provider import FileSchemaProvider
from tablestreamer.schemas.table_spec import TableIngestionSpec
from .base import MalformedRecord, SourceBatch, SourceConnector

log = get_logger("ingestion.file")

MARKER_SEPARATOR = "#"


def parse_marker(marker: Optional[str]) -> Optional[Tuple[str, int]]:
    """``"part-0001.jsonl#20"`` -> ``("part-0001.jsonl", 20)``."""
    if not marker:
        return None
    name, sep, count = marker.rpartition(MARKER_SEPARATOR)
    if not sep or not name:
        raise ValueError(f"Malformed file checkpoint: {marker!r}")
    return name, int(count)


def format_marker(name: str, consumed: int) -> str:
    return f"{name}{MARKER_SEPARATOR}{consumed}"


class DirectorySource(SourceConnector):
    """Reads every ``*<suffix>`` file in ``location`` in name order.

    The checkpoint names the last file read and how many of its records were
    consumed, so files appended to the directory are picked up on the next pull.
    """

    suffix = ""

    def __init__(self, location: str, offset_reset: str = "earliest"):
        if offset_reset != "earliest":
            # An empty pull never commits, so a "latest" start could never advance
            raise ValueError(f"directory sources only support source.offsetReset=earliest, got {offset_reset!r}")
        self.location = Path(location)
        self.offset_reset = offset_reset

    def _files(self) -> List[Path]:
        if not self.location.is_dir():
            raise SourcePullFailure(f"Source directory not found: {self.location}")
        return sorted(p for p in self.location.iterdir() if p.is_file() and p.name.endswith(self.suffix))

    def _read(self, path: Path) -> Iterator[Any]:
        raise NotImplementedError

    async def pull(self, checkpoint: Optional[str], max_records: int) -> SourceBatch:
        files = self._files()
        position = parse_marker(checkpoint)

        records: List[Any] = []
        marker = checkpoint
        for path in files:
            skip = 0
            if position is not None:
                if path.name < position[0]:
                    continue
                if path.name == position[0]:
                    skip = position[1]

            consumed = skip
            for index, record in enumerate(self._read(path)):
                if index < skip:
                    continue
                if len(records) >= max_records:
                    break
                records.append(record)
                consumed = index + 1
            if consumed > skip:
                marker = format_marker(path.name, consumed)
            if len(records) >= max_records:
                break

        log.info(f"Pulled {len(records)} records from {self.location} (checkpoint={checkpoint} -> {marker})")
        return SourceBatch(records=records, checkpoint=marker)


class JsonLinesSource(DirectorySource):
    name = "jsonl"
    suffix = ".jsonl"

    def _read(self, path: Path) -> Iterator[Any]:
        with path.open("r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    yield MalformedRecord(raw=line.rstrip("\n"), source_file=path.name, line=line_number)


class CSVSource(DirectorySource):
    """CSV files with a header row; values are cast using the source schema when given."""

    name = "csv"
    suffix = ".csv"

    def __init__(self, location: str, offset_reset: str = "earliest", field_types: Optional[Dict[str, str]] = None):
        super().__init__(location, offset_reset)
        self.field_types = field_types or {}

    def _read(self, path: Path) -> Iterator[Any]:
        with path.open("r", newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for row in reader:
                if None in row or None in row.values():
                    # Column count differs from the header
                    cells = [v for k, v in row.items() if k is not None and v is not None] + row.get(None, [])
                    raw = ",".join(cells)
                    yield MalformedRecord(raw=raw, source_file=path.name, line=reader.line_num)
                    continue
                yield {key: self._cast(key, value) for key, value in row.items()}

    def _cast(self, key: str, value: Optional[str]) -> Any:
        if value is None or value == "":
            return None
        kind = self.field_types.get(key)
        try:
            if kind in ("int", "long"):
                return int(value)
            if kind in ("float", "double"):
                return float(value)
            if kind == "boolean":
                return value.strip().lower() in ("true", "1", "yes")
        except ValueError:
            # Left as text; schema projection rejects it
            return value
        return value


def _jsonl_factory(spec: TableIngestionSpec) -> JsonLinesSource:
    return JsonLinesSource(spec.source.location, spec.source.offset_reset)


def _csv_factory(spec: TableIngestionSpec) -> CSVSource:
    provider = FileSchemaProvider(spec.schema_provider.source_schema, root=spec.config_root)
    field_types = {field.name: field.type for field in provider.source_schema().fields}
    return CSVSource(spec.source.location, spec.source.offset_reset, field_types)


def register_defaults(registry) -> None:
    registry.register("jsonl", _jsonl_factory)
    registry.register("csv", _csv_factory)
