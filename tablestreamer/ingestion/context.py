"""Per-run collaborators shared by the orchestrator and its pipelines."""

from dataclasses import dataclass, field
from typing import Optional

from tablestreamer.catalog.sync import CatalogSync
from tablestreamer.core.checkpoints import CheckpointStore
from tablestreamer.plugins import Plugins
from tablestreamer.resolution.resolver import ConfigResolver
from tablestreamer.storage.writer import StorageWriter


@dataclass
class RunOptions:
    max_concurrency: int = 1
    # seconds; None = no deadline
    run_timeout: Optional[float] = None
    require_all_success: bool = False
    pull_backoff_seconds: float = 0.5
    catalog_backoff_seconds: float = 1.0


@dataclass
class IngestionContext:
    """Constructed for one run and dropped when it ends.

    Checkpoint keys are disjoint per table, so one store is shared by every
    pipeline of the run.
    """

    resolver: ConfigResolver
    checkpoints: CheckpointStore
    writer: StorageWriter
    catalog: Optional[CatalogSync] = None
    options: RunOptions = field(default_factory=RunOptions)

    @property
    def plugins(self) -> Plugins:
        return self.resolver.plugins
