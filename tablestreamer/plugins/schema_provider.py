"""Schema providers and source -> target schema resolution.

Schemas use the Avro JSON layout (``{"type": "record", "fields": [...]}``).
Only the parts needed to project flat records are interpreted: field names,
primitive types, nullability (``["null", T]`` unions) and defaults. Nested
types are carried through without type checks.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from tablestreamer.core.errors import RecordTransformError, SchemaCompatibilityError

ANY_TYPE = "any"

# writer type -> reader types it can be read as
_PROMOTIONS = {
    "int": {"int", "long", "float", "double"},
    "long": {"long", "float", "double"},
    "float": {"float", "double"},
    "double": {"double"},
    "string": {"string", "bytes"},
    "bytes": {"bytes", "string"},
    "boolean": {"boolean"},
}


class SchemaField(BaseModel):
    name: str
    type: str = ANY_TYPE
    nullable: bool = False
    has_default: bool = False
    default: Any = None


class RecordSchema(BaseModel):
    name: str
    fields: List[SchemaField]

    def field(self, name: str) -> Optional[SchemaField]:
        for field in self.fields:
            if field.name == name:
                return field
        return None

    @classmethod
    def from_avro(cls, document: Dict[str, Any]) -> "RecordSchema":
        if document.get("type") != "record" or not isinstance(document.get("fields"), list):
            raise ValueError("schema must be an Avro record with a 'fields' list")
        fields = []
        for raw in document["fields"]:
            field_type, nullable = _read_type(raw.get("type"))
            fields.append(
                SchemaField(
                    name=raw["name"],
                    type=field_type,
                    nullable=nullable,
                    has_default="default" in raw,
                    default=raw.get("default"),
                )
            )
        return cls(name=document.get("name", "record"), fields=fields)


def _read_type(raw: Any) -> Tuple[str, bool]:
    if isinstance(raw, list):
        members = [member for member in raw if member != "null"]
        nullable = len(members) != len(raw)
        if len(members) == 1:
            inner, _ = _read_type(members[0])
            return inner, nullable
        return ANY_TYPE, nullable
    if isinstance(raw, dict):
        if raw.get("type") in _PROMOTIONS:
            return raw["type"], False
        return ANY_TYPE, False
    if isinstance(raw, str) and raw in _PROMOTIONS:
        return raw, False
    return ANY_TYPE, False


def check_compatibility(source: RecordSchema, target: RecordSchema) -> None:
    """Raise ``SchemaCompatibilityError`` if ``target`` cannot read ``source`` data."""
    problems = []
    for field in target.fields:
        origin = source.field(field.name)
        if origin is None:
            if not (field.has_default or field.nullable):
                problems.append(f"{field.name}: missing in source and has no default")
            continue
        if ANY_TYPE in (origin.type, field.type):
            continue
        if field.type not in _PROMOTIONS.get(origin.type, {origin.type}):
            problems.append(f"{field.name}: {origin.type} cannot be read as {field.type}")
    if problems:
        raise SchemaCompatibilityError(
            f"target schema {target.name!r} is incompatible with source schema {source.name!r}: " + "; ".join(problems)
        )


def project_record(record: Dict[str, Any], target: RecordSchema) -> Dict[str, Any]:
    """Map one raw record onto ``target``, filling defaults and checking types."""
    if not isinstance(record, dict):
        raise RecordTransformError(f"record is not an object: {record!r}")
    projected: Dict[str, Any] = {}
    for field in target.fields:
        value = record.get(field.name)
        if value is None:
            if field.has_default:
                value = field.default
            elif not field.nullable:
                raise RecordTransformError(f"required field {field.name!r} is missing", record)
        if value is not None:
            value = _coerce(field, value, record)
        projected[field.name] = value
    return projected


def _coerce(field: SchemaField, value: Any, record: Dict[str, Any]) -> Any:
    kind = field.type
    if kind == ANY_TYPE:
        return value
    if kind == "boolean" and isinstance(value, bool):
        return value
    if kind in ("int", "long") and isinstance(value, int) and not isinstance(value, bool):
        return value
    if kind in ("float", "double") and isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if kind == "string" and isinstance(value, str):
        return value
    if kind == "bytes" and isinstance(value, (bytes, str)):
        return value
    raise RecordTransformError(
        f"field {field.name!r} expects {kind}, got {type(value).__name__} ({value!r})", record
    )


class SchemaProvider(ABC):
    """Supplies the source and target schemas of one table."""

    @abstractmethod
    def source_schema(self) -> RecordSchema:
        """Schema records are read with."""

    def target_schema(self) -> RecordSchema:
        return self.source_schema()


class FileSchemaProvider(SchemaProvider):
    """Reads ``.avsc`` documents; relative locators resolve against ``root``."""

    def __init__(self, source_locator: str, target_locator: Optional[str] = None, root: Optional[str] = None):
        self.root = Path(root) if root else None
        self._source = self._load(source_locator)
        self._target = self._load(target_locator) if target_locator else self._source

    def _load(self, locator: str) -> RecordSchema:
        path = Path(locator)
        if not path.is_absolute() and self.root is not None:
            path = self.root / path
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
            return RecordSchema.from_avro(document)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise ValueError(f"cannot load schema {path}: {exc}") from exc

    def source_schema(self) -> RecordSchema:
        return self._source

    def target_schema(self) -> RecordSchema:
        return self._target


def register_defaults(registry) -> None:
    registry.register("file", FileSchemaProvider)
