"""Powers per-table resume-on-failure"""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from tablestreamer.models.base import Base


class TableCheckpoint(Base):
    __tablename__ = "table_checkpoints"

    table_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
    )

    marker: Mapped[str] = mapped_column(String, nullable=False)

    committed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
