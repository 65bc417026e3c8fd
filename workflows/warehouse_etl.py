"""
Prefect Workflow Orchestration - Transaction Warehouse ETL

Loads a raw transaction export and refreshes the summary tables:
- Load task reports failed batches and the resume line
- Refresh runs only after a completed load
- Storage failures surface as a failed flow run
"""

from typing import Optional

from prefect import flow, task, get_run_logger

from txn_warehouse.aggregation.maintainer import AggregateMaintainer
from txn_warehouse.config import get_settings
from txn_warehouse.config.logging import configure_logging
from txn_warehouse.database.connection import close_database, create_schema, init_database
from txn_warehouse.ingestion.batch_loader import LoadStatus
from txn_warehouse.ingestion.pipeline import TransactionPipeline

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_transactions",
    description="Parse, validate and load one raw transaction export",
)
async def load_transactions(source: str, start_line: int = 1) -> dict:
    """Load ``source`` without refreshing; returns the run report"""
    logger = get_run_logger()

    report = await TransactionPipeline().run(source, start_line=start_line, refresh=False)

    logger.info(
        f"Loaded {report.rows_loaded} of {report.rows_read} rows "
        f"({report.rows_rejected} rejected, {report.rows_unprocessed} unprocessed)"
    )
    for batch in report.failed_batches:
        logger.warning(
            f"Batch {batch.batch_number} (lines {batch.first_line}-{batch.last_line}) "
            f"rolled back: {batch.error_message}"
        )
    return report.model_dump(mode="json")


@task(
    name="refresh_aggregates",
    description="Recompute every summary table",
    retries=1,
    retry_delay_seconds=30,
)
async def refresh_aggregates() -> dict:
    """Full recompute of the summary tables"""
    logger = get_run_logger()

    result = await AggregateMaintainer().refresh()

    logger.info(f"Refreshed {len(result.row_counts)} aggregates in {result.duration_seconds:.2f}s")
    return result.model_dump(mode="json")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="transaction_warehouse_etl",
    description="Load a transaction export and refresh the summary tables",
)
async def transaction_warehouse_etl(
    source: str,
    start_line: int = 1,
    refresh: Optional[bool] = None,
) -> dict:
    """
    Transaction warehouse ETL.

    Steps:
    1. Load the export (batch-atomic, idempotent on re-run)
    2. Refresh aggregates if the load completed
    """
    logger = get_run_logger()
    refresh = settings.etl.refresh_after_load if refresh is None else refresh

    configure_logging()
    await init_database()
    try:
        await create_schema()

        load = await load_transactions(source, start_line=start_line)
        results = {"load": load, "refresh": None}

        if load["status"] != LoadStatus.COMPLETED.value:
            logger.warning(
                f"Load ended as {load['status']}; resume with start_line={load['resume_from_line']}"
            )
            if load["status"] == LoadStatus.FAILED.value:
                raise RuntimeError(f"Load failed: {load['error_message']}")
            return results

        if refresh:
            results["refresh"] = await refresh_aggregates()
        return results
    finally:
        await close_database()


if __name__ == "__main__":
    import asyncio
    import sys

    asyncio.run(transaction_warehouse_etl(sys.argv[1]))
