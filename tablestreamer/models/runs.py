"""Per-table run history for /ingestion/runs"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from tablestreamer.models.base import Base


class TableRun(Base):
    __tablename__ = "table_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    run_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    table_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String,
        nullable=False,  # committed | no_new_data | failed
    )

    records_written: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    records_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    checkpoint_before: Mapped[str | None] = mapped_column(String, nullable=True)
    checkpoint_after: Mapped[str | None] = mapped_column(String, nullable=True)

    failed_state: Mapped[str | None] = mapped_column(String, nullable=True)
    error_type: Mapped[str | None] = mapped_column(String, nullable=True)
    error_message: Mapped[str | None] = mapped_column(String, nullable=True)
    catalog_error: Mapped[str | None] = mapped_column(String, nullable=True)

    # "metadata" attribute name is reserved by SQLAlchemy; use column name metadata with safe attribute.
    meta: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
