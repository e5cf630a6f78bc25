"""Orchestration logic for multi-table ingestion."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Union

from tablestreamer.core.errors import PipelineCancelled
from tablestreamer.core.logging import get_logger
from tablestreamer.ingestion.context import IngestionContext
from tablestreamer.ingestion.pipeline import IngestionPipeline
from tablestreamer.resolution.layer import PropertyLayer
from tablestreamer.schemas.report import RunReport, RunStatus, TableOutcome, TableStatus

log = get_logger("ingestion.runner")


class MultiTableOrchestrator:
    """Resolves and ingests every configured table, one pipeline per table.

    A table that fails to resolve or ingest is recorded in the report and never
    stops the others. Tables run on at most ``options.max_concurrency`` workers;
    each identifier is scheduled once per run.
    """

    def __init__(self, context: IngestionContext):
        self.context = context

    async def run_from_file(self, entry_file: Union[str, Path]) -> RunReport:
        """Resolve the global config file and ingest the tables it lists."""
        global_layer = self.context.resolver.resolve(entry_file)
        tables = self.context.resolver.tables_to_ingest(global_layer)
        return await self.run(tables, global_layer)

    async def run(self, tables_to_ingest: Iterable[str], global_layer: PropertyLayer) -> RunReport:
        options = self.context.options
        report = RunReport(run_id=uuid.uuid4().hex, started_at=datetime.now(timezone.utc))
        tables = self._unique(tables_to_ingest)
        log.info(f"Run {report.run_id}: ingesting {len(tables)} table(s) with concurrency {options.max_concurrency}")

        loop = asyncio.get_running_loop()
        cancel_event = asyncio.Event()
        deadline: Optional[float] = None
        timer = None
        if options.run_timeout is not None:
            deadline = loop.time() + options.run_timeout
            timer = loop.call_later(options.run_timeout, cancel_event.set)

        semaphore = asyncio.Semaphore(max(1, options.max_concurrency))

        async def ingest(table_id: str) -> TableOutcome:
            async with semaphore:
                return await self._ingest_table(table_id, global_layer, cancel_event, deadline)

        try:
            report.outcomes = list(await asyncio.gather(*(ingest(table_id) for table_id in tables)))
        finally:
            if timer is not None:
                timer.cancel()

        report.ended_at = datetime.now(timezone.utc)
        report.status = self._overall_status(report.outcomes)
        for outcome in report.outcomes:
            if outcome.succeeded:
                log.info(f"Table={outcome.table_id} status={outcome.status.value} written={outcome.records_written}")
            else:
                log.error(f"Table={outcome.table_id} failed: {outcome.error_type}: {outcome.error_message}")
        log.info(f"Run {report.run_id} finished: {report.status.value} {report.summary()}")
        return report

    async def _ingest_table(
        self,
        table_id: str,
        global_layer: PropertyLayer,
        cancel_event: asyncio.Event,
        deadline: Optional[float],
    ) -> TableOutcome:
        if cancel_event.is_set():
            return self._failed(table_id, PipelineCancelled("run cancelled before the table started"))
        try:
            spec = self.context.resolver.resolve_table(table_id, global_layer)
        except Exception as exc:  # noqa: BLE001
            log.error(f"Failed to resolve config for {table_id}: {exc}")
            return self._failed(table_id, exc)

        pipeline = IngestionPipeline(spec, self.context, cancel_event, deadline)
        return await pipeline.run()

    @staticmethod
    def _failed(table_id: str, exc: BaseException) -> TableOutcome:
        return TableOutcome(
            table_id=table_id,
            status=TableStatus.FAILED,
            error_type=type(exc).__name__,
            error_message=str(exc),
        )

    @staticmethod
    def _unique(tables: Iterable[str]) -> List[str]:
        seen = set()
        ordered = []
        for table_id in tables:
            table_id = table_id.strip()
            if not table_id:
                continue
            if table_id in seen:
                log.warning(f"Table {table_id} listed more than once; ingesting it once")
                continue
            seen.add(table_id)
            ordered.append(table_id)
        return ordered

    def _overall_status(self, outcomes: List[TableOutcome]) -> RunStatus:
        failed = [o for o in outcomes if not o.succeeded]
        if not failed:
            return RunStatus.SUCCESS
        if self.context.options.require_all_success or len(failed) == len(outcomes):
            return RunStatus.FAILURE
        return RunStatus.PARTIAL_SUCCESS
