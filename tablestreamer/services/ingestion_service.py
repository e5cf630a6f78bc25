"""Multi-table ingestion service: wires settings into a per-run context."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from tablestreamer.catalog.sync import SqlCatalogSync
from tablestreamer.core.checkpoints import (
    CheckpointRecord,
    CheckpointStore,
    FileCheckpointStore,
    SqlCheckpointStore,
)
from tablestreamer.core.config import Settings, settings as default_settings
from tablestreamer.core.db import build_engine, build_session_factory, init_db
from tablestreamer.core.logging import get_logger
from tablestreamer.ingestion.context import IngestionContext, RunOptions
from tablestreamer.ingestion.runner import MultiTableOrchestrator
from tablestreamer.models.runs import TableRun
from tablestreamer.plugins import Plugins, default_plugins
from tablestreamer.resolution.resolver import ConfigResolver
from tablestreamer.schemas.report import RunReport
from tablestreamer.storage.writer import LocalTableWriter, StorageWriter

log = get_logger("ingestion_service")


class IngestionService:
    """Runs multi-table ingestion as configured by ``Settings``.

    Responsibilities:
    - Build the per-run context (resolver, checkpoint store, writer, catalog)
    - Resolve the global property file and run the orchestrator
    - Record every table outcome in run history
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        session_factory: Optional[sessionmaker] = None,
        plugins: Optional[Plugins] = None,
        writer: Optional[StorageWriter] = None,
    ):
        self.config = config or default_settings
        if session_factory is None:
            engine = build_engine(self.config.DATABASE_URL)
            init_db(engine)
            session_factory = build_session_factory(engine)
        self.session_factory = session_factory
        self.plugins = plugins or default_plugins()
        self.writer = writer or LocalTableWriter()

    @property
    def global_config_file(self) -> Path:
        return Path(self.config.CONFIG_ROOT) / self.config.GLOBAL_CONFIG_FILE

    def checkpoint_store(self) -> CheckpointStore:
        if self.config.CHECKPOINT_BACKEND == "sql":
            return SqlCheckpointStore(self.session_factory)
        return FileCheckpointStore(self.config.CHECKPOINT_DIR)

    def build_context(self) -> IngestionContext:
        return IngestionContext(
            resolver=ConfigResolver(self.config.CONFIG_ROOT, self.plugins),
            checkpoints=self.checkpoint_store(),
            writer=self.writer,
            catalog=SqlCatalogSync(self.session_factory),
            options=RunOptions(
                max_concurrency=self.config.MAX_CONCURRENT_TABLES,
                run_timeout=self.config.RUN_TIMEOUT_SECONDS,
                require_all_success=self.config.REQUIRE_ALL_TABLES_SUCCESS,
            ),
        )

    async def run(self, tables: Optional[Sequence[str]] = None) -> RunReport:
        """Ingest ``tables`` (default: every table the global config lists)."""
        context = self.build_context()
        orchestrator = MultiTableOrchestrator(context)
        global_layer = context.resolver.resolve(self.global_config_file)
        selected = list(tables) if tables else context.resolver.tables_to_ingest(global_layer)

        log.info(f"Starting ingestion for {len(selected)} table(s) from {self.global_config_file}")
        report = await orchestrator.run(selected, global_layer)
        self._record(report)
        return report

    def _record(self, report: RunReport) -> None:
        with self.session_factory() as db:
            for outcome in report.outcomes:
                db.add(
                    TableRun(
                        run_id=report.run_id,
                        table_id=outcome.table_id,
                        status=outcome.status.value,
                        records_written=outcome.records_written,
                        records_skipped=outcome.records_skipped,
                        checkpoint_before=outcome.checkpoint_before,
                        checkpoint_after=outcome.checkpoint_after,
                        failed_state=outcome.failed_state.value if outcome.failed_state else None,
                        error_type=outcome.error_type,
                        error_message=outcome.error_message,
                        catalog_error=outcome.catalog_error,
                        meta={"partitions": outcome.partitions, "instant": outcome.instant},
                        started_at=report.started_at,
                        ended_at=report.ended_at or datetime.now(timezone.utc),
                    )
                )
            db.commit()

    def configured_tables(self) -> List[str]:
        """Tables the global config schedules; raises ``TableConfigError`` if it does not resolve."""
        resolver = ConfigResolver(self.config.CONFIG_ROOT, self.plugins)
        return resolver.tables_to_ingest(resolver.resolve(self.global_config_file))

    def last_run(self) -> List[TableRun]:
        """Every table row of the most recent run, ordered by table id."""
        with self.session_factory() as db:
            latest = db.scalars(select(TableRun).order_by(TableRun.started_at.desc()).limit(1)).first()
            if latest is None:
                return []
            stmt = select(TableRun).where(TableRun.run_id == latest.run_id).order_by(TableRun.table_id)
            return list(db.scalars(stmt).all())

    def checkpoint(self, table_id: str) -> Optional[CheckpointRecord]:
        return self.checkpoint_store().get(table_id)

    def recent_runs(self, limit: int = 50, table_id: Optional[str] = None) -> List[TableRun]:
        with self.session_factory() as db:
            stmt = select(TableRun).order_by(TableRun.started_at.desc()).limit(limit)
            if table_id:
                stmt = stmt.where(TableRun.table_id == table_id)
            return list(db.scalars(stmt).all())
