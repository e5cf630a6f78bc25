"""Shared fixtures: property files, trip schema, JSON-lines sources, per-test context"""

import json
import os
from pathlib import Path
from typing import Dict, List

# No file sink while testing
os.environ.setdefault("LOG_DIR", "")

import pytest

from tablestreamer.catalog.sync import SqlCatalogSync
from tablestreamer.core.checkpoints import InMemoryCheckpointStore
from tablestreamer.core.db import build_engine, build_session_factory, init_db
from tablestreamer.ingestion.context import IngestionContext, RunOptions
from tablestreamer.resolution.layer import PropertyLayer
from tablestreamer.resolution.resolver import ConfigResolver
from tablestreamer.storage.writer import LocalTableWriter

TRIP_SCHEMA = {
    "type": "record",
    "name": "trip",
    "fields": [
        {"name": "_row_key", "type": "string"},
        {"name": "rider", "type": "string"},
        {"name": "fare", "type": "double"},
        {"name": "ts", "type": "long"},
        {"name": "datestr", "type": ["null", "string"], "default": None},
    ],
}

BASE_PROPERTIES = {
    "write.keygenerator.type": "simple",
    "write.recordkey.field": "_row_key",
    "write.partitionpath.field": "datestr",
    "schemaprovider.source.schema.file": "trip.avsc",
    "source.type": "jsonl",
    "source.maxRecords": "500",
    "catalog_sync.database": "testdb",
    "catalog_sync.partition_extractor": "multi_part_keys",
}


def write_props(path: Path, props: Dict[str, str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"{key}={value}\n" for key, value in props.items()), encoding="utf-8")
    return path


def trip_records(count: int, start: int = 0, datestr: str = "2024-01-01") -> List[dict]:
    return [
        {
            "_row_key": f"key-{i}",
            "rider": f"rider-{i}",
            "fare": 10.0 + i,
            "ts": 1704067200000 + i,
            "datestr": datestr,
        }
        for i in range(start, start + count)
    ]


def write_jsonl(directory: Path, name: str, records: List[dict]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text("".join(json.dumps(record) + "\n" for record in records), encoding="utf-8")
    return path


def config_file_name(table_id: str) -> str:
    database, table = table_id.split(".")
    return f"{database}_{table}.properties"


def global_layer_for(*table_ids: str, **extra: str) -> PropertyLayer:
    props = {"ingestion.tablesToBeIngested": ",".join(table_ids)}
    for table_id in table_ids:
        if "." in table_id:
            database, table = table_id.split(".")
            props[f"ingestion.{database}.{table}.configFile"] = config_file_name(table_id)
    props.update(extra)
    return PropertyLayer(props)


class TableFixture:
    """One table's config file, source directory and target base path."""

    def __init__(self, config_root: Path, work_dir: Path, table_id: str):
        self.table_id = table_id
        self.config_root = config_root
        self.source_dir = work_dir / "sources" / table_id
        self.base_path = work_dir / "tables" / table_id
        self.config_file = config_root / config_file_name(table_id)
        self.source_dir.mkdir(parents=True, exist_ok=True)

    def configure(self, **overrides: str) -> "TableFixture":
        props = {
            "include": "base.properties",
            "source.location": str(self.source_dir),
            "write.target.base.path": str(self.base_path),
        }
        props.update({key.replace("__", "."): value for key, value in overrides.items()})
        write_props(self.config_file, {k: v for k, v in props.items() if v is not None})
        return self

    def add_file(self, name: str, records: List[dict]) -> Path:
        return write_jsonl(self.source_dir, name, records)


@pytest.fixture
def config_root(tmp_path):
    """Config root holding base.properties and trip.avsc"""
    root = tmp_path / "config"
    root.mkdir()
    (root / "trip.avsc").write_text(json.dumps(TRIP_SCHEMA), encoding="utf-8")
    write_props(root / "base.properties", BASE_PROPERTIES)
    return root


@pytest.fixture
def make_table(config_root, tmp_path):
    """Factory: make_table("db1.t1", records=[...], **overrides)"""

    def _make(table_id: str, records: List[dict] = None, **overrides: str) -> TableFixture:
        table = TableFixture(config_root, tmp_path, table_id).configure(**overrides)
        if records is not None:
            table.add_file("part-0000.jsonl", records)
        return table

    return _make


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def checkpoints():
    return InMemoryCheckpointStore()


@pytest.fixture
def catalog(session_factory):
    return SqlCatalogSync(session_factory)


@pytest.fixture
def context(config_root, checkpoints, catalog):
    """Fresh per-test context; no backoff between retries"""
    return IngestionContext(
        resolver=ConfigResolver(config_root),
        checkpoints=checkpoints,
        writer=LocalTableWriter(),
        catalog=catalog,
        options=RunOptions(pull_backoff_seconds=0, catalog_backoff_seconds=0),
    )
