from tablestreamer.models.base import Base
from tablestreamer.models.catalog import CatalogPartition
from tablestreamer.models.checkpoints import TableCheckpoint
from tablestreamer.models.runs import TableRun

__all__ = [
    "Base",
    "CatalogPartition",
    "TableCheckpoint",
    "TableRun",
]
