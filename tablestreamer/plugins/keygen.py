"""Record key and partition path generators."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from tablestreamer.core.errors import RecordTransformError
from tablestreamer.resolution import keys

DEFAULT_PARTITION = "default"
NULL_KEY_PLACEHOLDER = "__null__"
EMPTY_KEY_PLACEHOLDER = "__empty__"
_PATH_SEPARATORS = ("/", "\\", "\0")

_JAVA_DATE_TOKENS = {
    "yyyy": "%Y",
    "yy": "%y",
    "MM": "%m",
    "dd": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
}
_JAVA_DATE_PATTERN = re.compile("|".join(sorted(_JAVA_DATE_TOKENS, key=len, reverse=True)))


def java_to_strftime(pattern: str) -> str:
    """Translate a ``yyyyMMdd``-style pattern into a ``strftime`` format."""
    return _JAVA_DATE_PATTERN.sub(lambda m: _JAVA_DATE_TOKENS[m.group(0)], pattern)


class KeyGenerator(ABC):
    """Derives the record key and partition path of a transformed record."""

    def __init__(
        self,
        record_key_fields: Sequence[str],
        partition_fields: Sequence[str],
        hive_style: bool = False,
        options: Optional[Mapping[str, str]] = None,
    ):
        self.record_key_fields: List[str] = list(record_key_fields)
        self.partition_fields: List[str] = list(partition_fields)
        self.hive_style = hive_style
        self.options: Mapping[str, str] = options or {}
        if not self.record_key_fields:
            raise ValueError("at least one record key field is required")

    @abstractmethod
    def record_key(self, record: Dict[str, Any]) -> str:
        """Record key for ``record``."""

    @abstractmethod
    def partition_path(self, record: Dict[str, Any]) -> str:
        """Partition path for ``record``; empty string for unpartitioned tables."""

    def _segment(self, field: str, value: str) -> str:
        return f"{field}={value}" if self.hive_style else value

    @staticmethod
    def _partition_value(record: Dict[str, Any], field: str) -> str:
        value = record.get(field)
        if value is None or str(value) == "":
            return DEFAULT_PARTITION
        text = str(value)
        if text in (".", "..") or any(sep in text for sep in _PATH_SEPARATORS):
            raise RecordTransformError(f"partition field {field!r} value {text!r} is not a valid path segment", record)
        return text

    def _composite_key(self, record: Dict[str, Any]) -> str:
        parts = []
        all_missing = True
        for field in self.record_key_fields:
            value = record.get(field)
            if value is None:
                parts.append(f"{field}:{NULL_KEY_PLACEHOLDER}")
            elif str(value) == "":
                parts.append(f"{field}:{EMPTY_KEY_PLACEHOLDER}")
            else:
                all_missing = False
                parts.append(f"{field}:{value}")
        if all_missing:
            raise RecordTransformError(
                f"record key fields {self.record_key_fields} are all null or empty", record
            )
        return ",".join(parts)


class SimpleKeyGenerator(KeyGenerator):
    """One record key field, one partition field."""

    def __init__(self, record_key_fields, partition_fields, hive_style=False, options=None):
        super().__init__(record_key_fields, partition_fields, hive_style, options)
        if len(self.record_key_fields) != 1:
            raise ValueError("simple key generator takes exactly one record key field")
        if len(self.partition_fields) != 1:
            raise ValueError("simple key generator takes exactly one partition path field")

    def record_key(self, record):
        field = self.record_key_fields[0]
        value = record.get(field)
        if value is None or str(value) == "":
            raise RecordTransformError(f"record key field {field!r} is null or empty", record)
        return str(value)

    def partition_path(self, record):
        field = self.partition_fields[0]
        return self._segment(field, self._partition_value(record, field))


class ComplexKeyGenerator(KeyGenerator):
    """Composite ``field:value`` record keys, ``/``-joined partition paths."""

    def __init__(self, record_key_fields, partition_fields, hive_style=False, options=None):
        super().__init__(record_key_fields, partition_fields, hive_style, options)
        if not self.partition_fields:
            raise ValueError("complex key generator needs at least one partition path field")

    def record_key(self, record):
        return self._composite_key(record)

    def partition_path(self, record):
        return "/".join(self._segment(field, self._partition_value(record, field)) for field in self.partition_fields)


class NonPartitionedKeyGenerator(KeyGenerator):
    def record_key(self, record):
        if len(self.record_key_fields) > 1:
            return self._composite_key(record)
        field = self.record_key_fields[0]
        value = record.get(field)
        if value is None or str(value) == "":
            raise RecordTransformError(f"record key field {field!r} is null or empty", record)
        return str(value)

    def partition_path(self, record):
        return ""


class TimestampBasedKeyGenerator(SimpleKeyGenerator):
    """Partitions by a timestamp field rendered with a date pattern.

    ``keygen.timebased.timestamp.type`` selects how the field is read:
    ``EPOCHMILLISECONDS`` (default), ``UNIX_TIMESTAMP`` (seconds) or
    ``DATE_STRING`` (ISO-8601).
    """

    def __init__(self, record_key_fields, partition_fields, hive_style=False, options=None):
        super().__init__(record_key_fields, partition_fields, hive_style, options)
        self.timestamp_type = (self.options.get(keys.TIMEBASED_TIMESTAMP_TYPE) or "EPOCHMILLISECONDS").strip().upper()
        if self.timestamp_type not in keys.TIMESTAMP_TYPES:
            raise ValueError(f"unsupported timestamp type {self.timestamp_type!r}")
        pattern = (self.options.get(keys.TIMEBASED_OUTPUT_DATEFORMAT) or keys.DEFAULT_DATEFORMAT).strip()
        self.output_format = java_to_strftime(pattern)

    def partition_path(self, record):
        field = self.partition_fields[0]
        value = record.get(field)
        if value is None or str(value) == "":
            return self._segment(field, DEFAULT_PARTITION)
        moment = self._to_datetime(value, record)
        return self._segment(field, moment.strftime(self.output_format))

    def _to_datetime(self, value: Any, record: Dict[str, Any]) -> datetime:
        try:
            if isinstance(value, datetime):
                return value.astimezone(timezone.utc) if value.tzinfo else value
            if self.timestamp_type == "DATE_STRING":
                return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            seconds = float(value)
            if self.timestamp_type == "EPOCHMILLISECONDS":
                seconds = seconds / 1000.0
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise RecordTransformError(f"cannot read {value!r} as {self.timestamp_type}: {exc}", record) from exc


def register_defaults(registry) -> None:
    registry.register("simple", SimpleKeyGenerator)
    registry.register("complex", ComplexKeyGenerator)
    registry.register("timestamp", TimestampBasedKeyGenerator)
    registry.register("nonpartitioned", NonPartitionedKeyGenerator)
