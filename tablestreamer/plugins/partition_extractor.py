"""Turn a storage partition path into catalog partition values."""

from __future__ import annotations

from typing import List


class PartitionValueExtractor:
    def extract(self, partition_path: str) -> List[str]:
        raise NotImplementedError


class MultiPartKeysValueExtractor(PartitionValueExtractor):
    """``a=1/b=2`` or ``1/2`` -> ``["1", "2"]``."""

    def extract(self, partition_path):
        values = []
        for segment in partition_path.strip("/").split("/"):
            if not segment:
                continue
            values.append(segment.split("=", 1)[1] if "=" in segment else segment)
        return values


class SlashEncodedDayPartitionValueExtractor(PartitionValueExtractor):
    """``2024/01/31`` -> ``["2024-01-31"]``."""

    def extract(self, partition_path):
        segments = [s.split("=", 1)[-1] for s in partition_path.strip("/").split("/") if s]
        if len(segments) != 3:
            raise ValueError(f"expected yyyy/mm/dd partition path, got {partition_path!r}")
        year, month, day = segments
        return [f"{int(year):04d}-{int(month):02d}-{int(day):02d}"]


class NonPartitionedExtractor(PartitionValueExtractor):
    def extract(self, partition_path):
        return []


def register_defaults(registry) -> None:
    registry.register("multi_part_keys", MultiPartKeysValueExtractor)
    registry.register("slash_encoded_day", SlashEncodedDayPartitionValueExtractor)
    registry.register("non_partitioned", NonPartitionedExtractor)
