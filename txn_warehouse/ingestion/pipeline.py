"""
Transaction Load Pipeline

Wires the stages together: parse -> validate -> batch load -> refresh.
Records flow lazily from the source file to the loader, so memory stays
bounded by the batch queue regardless of file size.
"""

import time
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

import structlog
from pydantic import BaseModel, Field

from txn_warehouse.aggregation.maintainer import AggregateMaintainer, RefreshResult
from txn_warehouse.config import get_settings
from txn_warehouse.errors import AggregateRefreshError
from txn_warehouse.ingestion.batch_loader import (
    BatchLoader,
    BatchOutcome,
    LoadStatus,
    create_batch_loader,
)
from txn_warehouse.ingestion.parser import RawRecord, parse_records
from txn_warehouse.quality.validators import (
    RecordValidator,
    summarize_rejections,
    validate_records,
)

logger = structlog.get_logger(__name__)


class RunReport(BaseModel):
    """
    Summary of one pipeline run.

    ``rows_read == rows_loaded + sum(rejections.values()) + rows_unprocessed``
    """
    source: str
    status: LoadStatus
    rows_read: int = 0
    rows_loaded: int = 0
    rows_unprocessed: int = 0
    rejections: Dict[str, int] = Field(default_factory=dict)
    batches_committed: int = 0
    batches_failed: int = 0
    failed_batches: List[BatchOutcome] = Field(default_factory=list)
    resume_from_line: Optional[int] = None
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0
    refresh: Optional[RefreshResult] = None
    refresh_error: Optional[str] = None

    @property
    def rows_rejected(self) -> int:
        return sum(self.rejections.values())


class _RowCounter:
    """Pass-through iterator counting the records it yields"""

    def __init__(self, records: Iterable[RawRecord]):
        self._records = records
        self.count = 0

    def __iter__(self) -> Iterator[RawRecord]:
        for record in self._records:
            self.count += 1
            yield record


class TransactionPipeline:
    """
    End-to-end load of one source file.

    Example:
        pipeline = TransactionPipeline()
        report = await pipeline.run("data/raw/transactions.csv")
    """

    def __init__(
        self,
        loader: Optional[BatchLoader] = None,
        validator: Optional[RecordValidator] = None,
        maintainer: Optional[AggregateMaintainer] = None,
    ):
        self.loader = loader or create_batch_loader()
        self.validator = validator or RecordValidator()
        self.maintainer = maintainer or AggregateMaintainer()

    def request_stop(self) -> None:
        """Stop after in-flight batches; the report carries the resume line"""
        self.loader.request_stop()

    async def run(
        self,
        source: Union[str, Path],
        start_line: int = 1,
        refresh: Optional[bool] = None,
    ) -> RunReport:
        """
        Load ``source`` and, when the load completes, refresh the aggregates.

        Args:
            source: Delimited transaction file
            start_line: First physical line to load, from a previous report's
                ``resume_from_line``
            refresh: Override ``ETL_REFRESH_AFTER_LOAD``

        Returns:
            RunReport: a failed refresh is reported, never raised; the load
            itself is already committed at that point
        """
        etl = get_settings().etl
        if refresh is None:
            refresh = etl.refresh_after_load

        with structlog.contextvars.bound_contextvars(run_source=str(source)):
            return await self._run(source, start_line, refresh)

    async def _run(self, source: Union[str, Path], start_line: int, refresh: bool) -> RunReport:
        etl = get_settings().etl
        started = time.perf_counter()
        logger.info("Pipeline run started", start_line=start_line)

        parsed = _RowCounter(
            parse_records(source, delimiter=etl.delimiter, encoding=etl.encoding, start_line=start_line)
        )
        rejections: Counter = Counter()
        valid = validate_records(parsed, self.validator, rejections)

        load = await self.loader.load(valid)

        for reason, count in load.rejections.items():
            rejections[reason] += count

        report = RunReport(
            source=str(source),
            status=load.status,
            rows_read=parsed.count,
            rows_loaded=load.rows_loaded,
            rows_unprocessed=load.rows_unprocessed,
            rejections=summarize_rejections(rejections),
            batches_committed=load.batches_committed,
            batches_failed=load.batches_failed,
            failed_batches=load.failed_batches,
            resume_from_line=load.resume_from_line,
            error_message=load.error_message,
            started_at=load.started_at,
        )

        logger.info(
            "Load finished",
            status=report.status.value,
            rows_read=report.rows_read,
            rows_loaded=report.rows_loaded,
            rejections={k: v for k, v in report.rejections.items() if v},
        )

        if refresh and report.status == LoadStatus.COMPLETED:
            try:
                report.refresh = await self.maintainer.refresh()
            except AggregateRefreshError as e:
                report.refresh_error = str(e)

        report.completed_at = datetime.utcnow()
        report.duration_seconds = time.perf_counter() - started
        logger.info(
            "Pipeline run finished",
            status=report.status.value,
            duration_seconds=round(report.duration_seconds, 3),
        )
        return report
