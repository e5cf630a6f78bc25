"""Schema projection and key generation for one pulled batch."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, Field

from tablestreamer.core.errors import RecordTransformError
from tablestreamer.core.logging import get_logger
from tablestreamer.plugins.keygen import KeyGenerator
from tablestreamer.plugins.schema_provider import SchemaProvider, check_compatibility, project_record
from tablestreamer.storage.writer import PARTITION_PATH_FIELD, RECORD_KEY_FIELD

log = get_logger("ingestion.transform")

MAX_REPORTED_ERRORS = 20


class TransformResult(BaseModel):
    records: List[Dict[str, Any]] = Field(default_factory=list)
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)


class BatchTransformer:
    """Maps raw records onto the target schema and keys them.

    ``strict`` raises on the first bad record; ``skip`` drops it and keeps going.
    An incompatible schema pair always raises.
    """

    def __init__(self, schema_provider: SchemaProvider, key_generator: KeyGenerator, error_policy: str = "strict"):
        self.schema_provider = schema_provider
        self.key_generator = key_generator
        self.error_policy = error_policy

    def transform(self, records: List[Any]) -> TransformResult:
        source = self.schema_provider.source_schema()
        target = self.schema_provider.target_schema()
        check_compatibility(source, target)

        result = TransformResult()
        for position, record in enumerate(records):
            try:
                projected = project_record(record, target)
                keyed = {
                    RECORD_KEY_FIELD: self.key_generator.record_key(projected),
                    PARTITION_PATH_FIELD: self.key_generator.partition_path(projected),
                }
                keyed.update(projected)
            except RecordTransformError as exc:
                if self.error_policy != "skip":
                    raise RecordTransformError(f"record {position}: {exc}", exc.record) from exc
                result.skipped += 1
                if len(result.errors) < MAX_REPORTED_ERRORS:
                    result.errors.append(f"record {position}: {exc}")
                continue
            result.records.append(keyed)

        if result.skipped:
            log.warning(f"Skipped {result.skipped} of {len(records)} malformed record(s)")
        return result
