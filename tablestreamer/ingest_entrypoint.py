"""Ingestion entrypoint - Standalone script for running one ingestion pass.

Usage:
    python -m tablestreamer.ingest_entrypoint                  # All tables in the global config
    python -m tablestreamer.ingest_entrypoint db1.t1 db2.t2    # Selected tables only

Settings (CONFIG_ROOT, GLOBAL_CONFIG_FILE, CHECKPOINT_BACKEND, ...) come from the
environment or .env.
"""

import asyncio
import sys
from typing import List, Optional

from tablestreamer.core.errors import IngestionError
from tablestreamer.core.logging import get_logger
from tablestreamer.schemas.report import RunReport, RunStatus
from tablestreamer.services.ingestion_service import IngestionService

logger = get_logger("ingest_entrypoint")


async def run_ingestion(tables: Optional[List[str]] = None) -> RunReport:
    service = IngestionService()
    return await service.run(tables)


def exit_code(report: RunReport) -> int:
    """Non-zero only for a failed run; partial success is a valid outcome."""
    return 1 if report.status == RunStatus.FAILURE else 0


def main() -> int:
    """Main entry point for one ingestion pass."""
    tables = sys.argv[1:] or None
    logger.info(f"Ingestion starting for {tables or 'all configured tables'}...")

    try:
        report = asyncio.run(run_ingestion(tables))
    except IngestionError as exc:
        logger.error(f"Ingestion could not start: {exc}")
        return 1

    logger.info(f"Ingestion completed: {report.status.value} {report.summary()}")
    for table_id in report.failed_tables:
        outcome = report.outcome(table_id)
        logger.error(f"  {table_id}: {outcome.error_type}: {outcome.error_message}")
    return exit_code(report)


if __name__ == "__main__":
    sys.exit(main())
