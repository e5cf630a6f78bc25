"""Catalog sync: register newly written partitions with a metadata store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tablestreamer.core.errors import CatalogSyncFailure
from tablestreamer.core.logging import get_logger
from tablestreamer.models.catalog import CatalogPartition
from tablestreamer.plugins.partition_extractor import PartitionValueExtractor
from tablestreamer.schemas.table_spec import CatalogTarget

log = get_logger("catalog.sync")


class CatalogSync(ABC):
    @abstractmethod
    async def sync_partitions(
        self,
        table_id: str,
        target: CatalogTarget,
        partitions: List[str],
        extractor: PartitionValueExtractor,
    ) -> int:
        """Register ``partitions``; return how many were new. Raise ``CatalogSyncFailure``."""


class SqlCatalogSync(CatalogSync):
    """Stores partitions in the ``catalog_partitions`` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def sync_partitions(self, table_id, target, partitions, extractor):
        if not target.database:
            raise CatalogSyncFailure(f"No catalog database configured for {table_id}")

        rows = []
        for partition in partitions:
            try:
                values = extractor.extract(partition)
            except ValueError as exc:
                raise CatalogSyncFailure(f"Cannot extract partition values from {partition!r}: {exc}") from exc
            if target.partition_fields and values and len(values) != len(target.partition_fields):
                raise CatalogSyncFailure(
                    f"Partition {partition!r} yields {len(values)} value(s) "
                    f"for fields {target.partition_fields}"
                )
            rows.append((partition, values))

        try:
            with self.session_factory() as db:
                known = set(
                    db.scalars(
                        select(CatalogPartition.partition_path).where(
                            CatalogPartition.database == target.database,
                            CatalogPartition.table_name == target.table,
                        )
                    ).all()
                )
                added = 0
                for partition, values in rows:
                    if partition in known:
                        continue
                    db.add(
                        CatalogPartition(
                            database=target.database,
                            table_name=target.table,
                            partition_path=partition,
                            partition_values=values,
                            source_table_id=table_id,
                        )
                    )
                    known.add(partition)
                    added += 1
                db.commit()
        except SQLAlchemyError as exc:
            raise CatalogSyncFailure(f"Catalog sync for {target.database}.{target.table} failed: {exc}") from exc

        log.info(f"Catalog {target.database}.{target.table}: {added} new partition(s) of {len(rows)}")
        return added

    def list_partitions(self, database: str, table: str) -> List[CatalogPartition]:
        with self.session_factory() as db:
            return list(
                db.scalars(
                    select(CatalogPartition)
                    .where(CatalogPartition.database == database, CatalogPartition.table_name == table)
                    .order_by(CatalogPartition.partition_path)
                ).all()
            )
