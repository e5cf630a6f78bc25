"""Catalog partitions registered by catalog sync"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from tablestreamer.models.base import Base


class CatalogPartition(Base):
    __tablename__ = "catalog_partitions"
    __table_args__ = (UniqueConstraint("database", "table_name", "partition_path", name="uq_catalog_partition"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    database: Mapped[str] = mapped_column(String, nullable=False)
    table_name: Mapped[str] = mapped_column(String, nullable=False)
    partition_path: Mapped[str] = mapped_column(String, nullable=False)

    # extracted partition values, ordered like the catalog partition fields
    partition_values: Mapped[list] = mapped_column(JSON, nullable=False)

    source_table_id: Mapped[str] = mapped_column(String, nullable=False)

    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
