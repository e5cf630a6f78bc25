"""Per-table ingestion state machine.

INIT -> FETCH_CHECKPOINT -> PULL_BATCH -> TRANSFORM -> WRITE -> SYNC_CATALOG
-> COMMIT_CHECKPOINT -> DONE, with ERROR reachable from every non-terminal
state. The checkpoint is written only after WRITE returned, and never from
ERROR, so a failed run resumes from the last good checkpoint.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from tablestreamer.core.errors import (
    CatalogSyncFailure,
    IngestionError,
    InvalidTableConfigError,
    PipelineCancelled,
    RecordTransformError,
    SourcePullFailure,
)
from tablestreamer.core.logging import get_logger
from tablestreamer.ingestion.base import SourceBatch, SourceConnector
from tablestreamer.ingestion.context import IngestionContext
from tablestreamer.ingestion.transform import BatchTransformer, TransformResult
from tablestreamer.plugins.partition_extractor import PartitionValueExtractor
from tablestreamer.resolution import keys
from tablestreamer.schemas.report import PipelineState, TableOutcome, TableStatus
from tablestreamer.schemas.table_spec import TableIngestionSpec
from tablestreamer.storage.writer import WriteResult

log = get_logger("ingestion.pipeline")

# Stages that may not start once the run is cancelled. After WRITE the
# pipeline always finishes so the checkpoint follows the durable write.
_CANCELLABLE = {
    PipelineState.FETCH_CHECKPOINT,
    PipelineState.PULL_BATCH,
    PipelineState.TRANSFORM,
    PipelineState.WRITE,
}


def new_instant() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")


class IngestionPipeline:
    """Runs one batch for one table and reports how it ended."""

    def __init__(
        self,
        spec: TableIngestionSpec,
        context: IngestionContext,
        cancel_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ):
        self.spec = spec
        self.context = context
        self.cancel_event = cancel_event or asyncio.Event()
        self.deadline = deadline
        self.state = PipelineState.INIT
        self.history: List[PipelineState] = [PipelineState.INIT]
        self.log = log.bind(name=f"ingestion.pipeline[{spec.table_id}]")

        self._connector: Optional[SourceConnector] = None
        self._transformer: Optional[BatchTransformer] = None
        self._extractor: Optional[PartitionValueExtractor] = None

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------
    async def run(self) -> TableOutcome:
        spec = self.spec
        outcome = TableOutcome(table_id=spec.table_id, status=TableStatus.FAILED)
        try:
            self._init()

            self._advance(PipelineState.FETCH_CHECKPOINT)
            outcome.checkpoint_before = self._fetch_checkpoint()

            self._advance(PipelineState.PULL_BATCH)
            batch = await self._pull(outcome.checkpoint_before)
            if batch.is_empty:
                self._advance(PipelineState.DONE)
                outcome.status = TableStatus.NO_NEW_DATA
                self.log.info(f"No new data (checkpoint={outcome.checkpoint_before}); checkpoint unchanged")
                return outcome

            self._advance(PipelineState.TRANSFORM)
            transformed = self._transform(batch)
            outcome.records_skipped = transformed.skipped
            outcome.transform_errors = transformed.errors

            self._advance(PipelineState.WRITE)
            written = await self._write(transformed)
            outcome.records_written = written.records_written
            outcome.instant = written.instant
            outcome.partitions = written.partitions

            self._advance(PipelineState.SYNC_CATALOG)
            outcome.catalog_error = await self._sync_catalog(written.partitions)

            self._advance(PipelineState.COMMIT_CHECKPOINT)
            self.context.checkpoints.put(spec.checkpoint_key, batch.checkpoint)
            outcome.checkpoint_after = batch.checkpoint

            self._advance(PipelineState.DONE)
            outcome.status = TableStatus.COMMITTED
            self.log.info(
                f"Committed {written.records_written} records at {written.instant} "
                f"(checkpoint {outcome.checkpoint_before} -> {batch.checkpoint})"
            )
        except IngestionError as exc:
            self._fail(outcome, exc)
        except Exception as exc:  # noqa: BLE001
            self.log.exception(f"Unexpected error in {self.state.value}: {exc}")
            self._fail(outcome, exc)
        finally:
            outcome.states = list(self.history)
            if self._connector is not None:
                await self._connector.close()
        return outcome

    def _advance(self, state: PipelineState) -> None:
        if state in _CANCELLABLE and self.cancelled:
            raise PipelineCancelled(f"run cancelled before {state.value}")
        self.log.debug(f"{self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _fail(self, outcome: TableOutcome, exc: BaseException) -> None:
        outcome.status = TableStatus.FAILED
        outcome.failed_state = self.state
        outcome.error_type = type(exc).__name__
        outcome.error_message = str(exc)
        self.log.error(f"Failed in {self.state.value}: {outcome.error_type}: {exc}")
        self.state = PipelineState.ERROR
        self.history.append(PipelineState.ERROR)

    @property
    def cancelled(self) -> bool:
        if self.cancel_event.is_set():
            return True
        if self.deadline is not None and asyncio.get_running_loop().time() >= self.deadline:
            self.cancel_event.set()
            return True
        return False

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _init(self) -> None:
        spec = self.spec
        plugins = self.context.plugins
        missing = spec.missing_fields()
        if missing:
            raise InvalidTableConfigError(spec.table_id, missing)

        def build(field: str, factory):
            try:
                return factory()
            except (KeyError, ValueError) as exc:
                raise InvalidTableConfigError(spec.table_id, [field], f"cannot build {field}: {exc}") from exc

        ref = spec.schema_provider
        schema_provider = build(
            keys.SCHEMA_PROVIDER_TYPE,
            lambda: plugins.schema_providers.create(ref.type, ref.source_schema, ref.target_schema, spec.config_root),
        )
        keygen = spec.key_generator
        key_generator = build(
            keys.KEYGEN_TYPE,
            lambda: plugins.key_generators.create(
                keygen.type, keygen.record_key_fields, keygen.partition_fields, keygen.hive_style, spec.properties
            ),
        )
        self._extractor = build(
            keys.CATALOG_PARTITION_EXTRACTOR,
            lambda: plugins.partition_extractors.create(spec.catalog.partition_extractor),
        )
        self._transformer = BatchTransformer(schema_provider, key_generator, spec.error_policy)
        self._connector = build(keys.SOURCE_TYPE, lambda: plugins.sources.create(spec.source.type, spec))

    def _fetch_checkpoint(self) -> Optional[str]:
        record = self.context.checkpoints.get(self.spec.checkpoint_key)
        if record is None:
            self.log.info(f"No checkpoint; starting from source default ({self.spec.source.offset_reset})")
            return None
        return record.marker

    async def _pull(self, checkpoint: Optional[str]) -> SourceBatch:
        retries = self.spec.source.pull_retries
        backoff = self.context.options.pull_backoff_seconds
        for attempt in range(retries + 1):
            try:
                batch = await asyncio.wait_for(
                    self._connector.pull(checkpoint, self.spec.source.max_records),
                    timeout=self._remaining(),
                )
                break
            except asyncio.TimeoutError as exc:
                raise PipelineCancelled("run deadline reached while pulling") from exc
            except SourcePullFailure as exc:
                if attempt >= retries:
                    raise
                self.log.warning(f"Pull attempt {attempt + 1}/{retries + 1} failed, retrying: {exc}")
                await asyncio.sleep(backoff * (2 ** attempt))

        if not batch.is_empty and batch.checkpoint is None:
            raise SourcePullFailure("source returned records without a checkpoint marker")
        return batch

    def _transform(self, batch: SourceBatch) -> TransformResult:
        result = self._transformer.transform(batch.records)
        if not result.records:
            raise RecordTransformError(f"all {len(batch.records)} record(s) in the batch were rejected")
        return result

    async def _write(self, transformed: TransformResult) -> WriteResult:
        write = asyncio.ensure_future(self.context.writer.write(self.spec, transformed.records, new_instant()))
        try:
            return await asyncio.shield(write)
        except asyncio.CancelledError:
            # Let the batch land (or roll back) before giving up; checkpoint stays untouched.
            self.log.warning("Cancelled during WRITE; waiting for the in-flight batch to settle")
            await asyncio.wait([write])
            raise

    async def _sync_catalog(self, partitions: List[str]) -> Optional[str]:
        target = self.spec.catalog
        if not target.enabled or self.context.catalog is None:
            return None
        if self.cancelled:
            return "catalog sync skipped: run cancelled"

        error: Optional[CatalogSyncFailure] = None
        for attempt in range(target.retries + 1):
            try:
                await self.context.catalog.sync_partitions(self.spec.table_id, target, partitions, self._extractor)
                return None
            except CatalogSyncFailure as exc:
                error = exc
                self.log.warning(f"Catalog sync attempt {attempt + 1}/{target.retries + 1} failed: {exc}")
                if attempt < target.retries:
                    await asyncio.sleep(self.context.options.catalog_backoff_seconds * (2 ** attempt))
        return str(error)

    def _remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(self.deadline - asyncio.get_running_loop().time(), 0.0)
