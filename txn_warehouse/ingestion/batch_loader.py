"""
Batch Loader

Loads validated transaction records into the normalized store in
fixed-size batches. Supports:
- One atomic unit of work per batch (dimensions, customers and facts together)
- Duplicate transaction id detection for idempotent re-runs
- Parallel workers over disjoint batches
- One retry with backoff on storage failures
- Graceful drain between batches
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

import structlog
from prometheus_client import Counter, Histogram
from pydantic import BaseModel, Field
from sqlalchemy import insert, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from txn_warehouse.config import get_settings
from txn_warehouse.database.connection import get_db
from txn_warehouse.database.models import TransactionFact
from txn_warehouse.errors import ConflictError, RejectionReason, StorageError
from txn_warehouse.quality.validators import TransactionRecord
from txn_warehouse.transformation.resolvers import ResolutionCache

logger = structlog.get_logger(__name__)

# Bound on ids per existence lookup, well under every dialect's parameter limit
ID_LOOKUP_CHUNK = 500


# =============================================================================
# METRICS
# =============================================================================

ROWS_LOADED = Counter(
    "txn_warehouse_rows_loaded_total",
    "Transaction facts committed",
)

ROWS_REJECTED = Counter(
    "txn_warehouse_rows_rejected_total",
    "Rows rejected by the batch loader",
    ["reason"],
)

BATCHES_PROCESSED = Counter(
    "txn_warehouse_batches_total",
    "Batches processed",
    ["status"],
)

BATCH_DURATION = Histogram(
    "txn_warehouse_batch_seconds",
    "Time spent per batch unit of work",
)


# =============================================================================
# MODELS
# =============================================================================

class LoadStatus(str, Enum):
    """Load run status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


class BatchStatus(str, Enum):
    """Outcome of one batch"""
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class Batch:
    """A fixed-size slice of the validated record stream"""
    number: int
    records: List[TransactionRecord] = field(default_factory=list)

    @property
    def first_line(self) -> int:
        return self.records[0].line_number if self.records else 0

    @property
    def last_line(self) -> int:
        return self.records[-1].line_number if self.records else 0

    def __len__(self) -> int:
        return len(self.records)


class BatchOutcome(BaseModel):
    """Result of one batch unit of work"""
    batch_number: int
    first_line: int
    last_line: int
    record_count: int
    status: BatchStatus
    loaded: int = 0
    duplicates: int = 0
    attempts: int = 1
    duration_seconds: float = 0
    error_message: Optional[str] = None


class LoadResult(BaseModel):
    """Result of a batch load run"""
    status: LoadStatus
    rows_received: int = 0
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
    load_duration_seconds: float = 0


def batched(records: Iterable[TransactionRecord], batch_size: int) -> Iterator[Batch]:
    """Group a record stream into consecutive Batches of ``batch_size``"""
    number = 1
    current: List[TransactionRecord] = []
    for record in records:
        current.append(record)
        if len(current) >= batch_size:
            yield Batch(number=number, records=current)
            number += 1
            current = []
    if current:
        yield Batch(number=number, records=current)


# =============================================================================
# LOADER
# =============================================================================

class BatchLoader:
    """
    Batch loader for validated transaction records.

    Every batch is one transaction: all facts in it commit, or none do.
    A constraint violation fails only its own batch; a storage failure is
    retried once and then ends the run with the batch's line range so it
    can be resumed.

    Example:
        loader = BatchLoader(batch_size=10_000, max_workers=4)
        result = await loader.load(records)
    """

    def __init__(
        self,
        batch_size: Optional[int] = None,
        max_workers: Optional[int] = None,
        retry_attempts: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
    ):
        etl = get_settings().etl
        self.batch_size = batch_size or etl.batch_size
        self.max_workers = max_workers or etl.max_workers
        self.retry_attempts = retry_attempts or etl.retry_attempts
        self.retry_backoff_seconds = (
            etl.retry_backoff_seconds if retry_backoff_seconds is None else retry_backoff_seconds
        )
        if self.batch_size <= 0 or self.max_workers <= 0:
            raise ValueError("batch_size and max_workers must be positive")
        self._stop = asyncio.Event()

    def request_stop(self) -> None:
        """Finish in-flight batches, start no new ones"""
        if not self._stop.is_set():
            logger.info("Stop requested, draining in-flight batches")
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    async def _write_batch(self, session: AsyncSession, batch: Batch) -> Tuple[int, int]:
        """Insert one batch inside an open session. Returns (loaded, duplicates)."""
        seen: Set[int] = set()
        unique: List[TransactionRecord] = []
        for record in batch.records:
            if record.transaction_id in seen:
                continue
            seen.add(record.transaction_id)
            unique.append(record)

        ids = [record.transaction_id for record in unique]
        existing: Set[int] = set()
        for start in range(0, len(ids), ID_LOOKUP_CHUNK):
            chunk = ids[start:start + ID_LOOKUP_CHUNK]
            result = await session.execute(
                select(TransactionFact.id).where(TransactionFact.id.in_(chunk))
            )
            existing.update(result.scalars().all())

        fresh = [record for record in unique if record.transaction_id not in existing]
        duplicates = len(batch.records) - len(fresh)

        cache = ResolutionCache(session)
        rows = []
        for record in fresh:
            rows.append({
                "id": record.transaction_id,
                "customer_id": await cache.customer(*record.demographics),
                "region_id": await cache.dimension("region", record.region),
                "tier_id": await cache.dimension("tier", record.tier),
                "employment_id": await cache.dimension("employment_status", record.employment_status),
                "payment_method_id": await cache.dimension("payment_method", record.payment_method),
                "occurred_at": record.occurred_at,
                "is_referral": record.is_referral,
                "amount": record.amount,
            })

        if rows:
            await session.execute(insert(TransactionFact), rows)

        return len(rows), duplicates

    async def _run_unit_of_work(self, batch: Batch) -> Tuple[int, int]:
        """One transaction per batch, storage errors translated to the taxonomy"""
        try:
            async with get_db() as session:
                return await self._write_batch(session, batch)
        except IntegrityError as e:
            raise ConflictError(
                f"Constraint violation in batch {batch.number}: {e.orig}",
                batch_number=batch.number,
                record_count=len(batch),
            ) from e
        except (DBAPIError, OSError) as e:
            raise StorageError(
                f"Storage failure in batch {batch.number}: {e}",
                batch_number=batch.number,
                first_line=batch.first_line,
                last_line=batch.last_line,
            ) from e

    async def load_batch(self, batch: Batch) -> BatchOutcome:
        """
        Load one batch, retrying storage failures with exponential backoff.

        Returns:
            BatchOutcome: committed, or failed on a constraint conflict

        Raises:
            StorageError: the final attempt also failed
        """
        started = time.perf_counter()
        attempts = 0

        def log_retry(retry_state) -> None:
            logger.warning(
                "Batch storage failure, retrying",
                batch=batch.number,
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()),
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(multiplier=self.retry_backoff_seconds, max=30),
                retry=retry_if_exception_type(StorageError),
                before_sleep=log_retry,
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    loaded, duplicates = await self._run_unit_of_work(batch)
        except ConflictError as e:
            duration = time.perf_counter() - started
            BATCH_DURATION.observe(duration)
            BATCHES_PROCESSED.labels(status=BatchStatus.FAILED.value).inc()
            logger.warning(
                "Batch rolled back",
                batch=batch.number,
                records=len(batch),
                first_line=batch.first_line,
                last_line=batch.last_line,
                error=str(e),
            )
            return BatchOutcome(
                batch_number=batch.number,
                first_line=batch.first_line,
                last_line=batch.last_line,
                record_count=len(batch),
                status=BatchStatus.FAILED,
                attempts=attempts,
                duration_seconds=duration,
                error_message=str(e),
            )

        duration = time.perf_counter() - started
        BATCH_DURATION.observe(duration)
        BATCHES_PROCESSED.labels(status=BatchStatus.COMMITTED.value).inc()
        logger.info(
            "Batch committed",
            batch=batch.number,
            loaded=loaded,
            duplicates=duplicates,
            duration_seconds=round(duration, 3),
        )
        return BatchOutcome(
            batch_number=batch.number,
            first_line=batch.first_line,
            last_line=batch.last_line,
            record_count=len(batch),
            status=BatchStatus.COMMITTED,
            loaded=loaded,
            duplicates=duplicates,
            attempts=attempts,
            duration_seconds=duration,
        )

    def _record_outcome(self, result: LoadResult, outcome: BatchOutcome) -> None:
        if outcome.status == BatchStatus.COMMITTED:
            result.batches_committed += 1
            result.rows_loaded += outcome.loaded
            ROWS_LOADED.inc(outcome.loaded)
            if outcome.duplicates:
                reason = RejectionReason.DUPLICATE_ID.value
                result.rejections[reason] = result.rejections.get(reason, 0) + outcome.duplicates
                ROWS_REJECTED.labels(reason=reason).inc(outcome.duplicates)
        else:
            result.batches_failed += 1
            result.failed_batches.append(outcome)
            reason = RejectionReason.BATCH_CONFLICT.value
            result.rejections[reason] = result.rejections.get(reason, 0) + outcome.record_count
            ROWS_REJECTED.labels(reason=reason).inc(outcome.record_count)

    @staticmethod
    def _record_unprocessed(result: LoadResult, batch: Batch, resume_lines: List[int]) -> None:
        result.rows_unprocessed += len(batch)
        resume_lines.append(batch.first_line)

    async def load(self, records: Iterable[TransactionRecord]) -> LoadResult:
        """
        Load a stream of validated records.

        Args:
            records: Validated records, consumed lazily and only once

        Returns:
            LoadResult: counts, failed batches and, for an unfinished run,
            the source line to resume from
        """
        started_at = datetime.utcnow()
        result = LoadResult(status=LoadStatus.RUNNING, started_at=started_at)

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_workers * 2)
        resume_lines: List[int] = []
        fatal: List[BaseException] = []

        logger.info(
            "Starting batch load",
            batch_size=self.batch_size,
            workers=self.max_workers,
        )

        async def worker(worker_id: int) -> None:
            while True:
                batch = await queue.get()
                try:
                    if batch is None:
                        return
                    if self._stop.is_set():
                        self._record_unprocessed(result, batch, resume_lines)
                        continue
                    try:
                        outcome = await self.load_batch(batch)
                    except Exception as e:
                        # Storage failures end the run; anything else is re-raised after the drain
                        logger.error(
                            "Batch failed, aborting run",
                            worker=worker_id,
                            batch=batch.number,
                            first_line=batch.first_line,
                            last_line=batch.last_line,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        fatal.append(e)
                        self._stop.set()
                        self._record_unprocessed(result, batch, resume_lines)
                        continue
                    self._record_outcome(result, outcome)
                finally:
                    queue.task_done()

        workers = [asyncio.create_task(worker(i)) for i in range(self.max_workers)]
        try:
            for batch in batched(records, self.batch_size):
                result.rows_received += len(batch)
                if self._stop.is_set():
                    self._record_unprocessed(result, batch, resume_lines)
                    break
                await queue.put(batch)
        finally:
            for _ in workers:
                await queue.put(None)
            await asyncio.gather(*workers)

        result.completed_at = datetime.utcnow()
        result.load_duration_seconds = (result.completed_at - started_at).total_seconds()
        if resume_lines:
            result.resume_from_line = min(resume_lines)

        stopped = self._stop.is_set()
        # A stop applies to one run; the next load starts clean
        self._stop.clear()

        if fatal:
            error = fatal[0]
            result.status = LoadStatus.FAILED
            result.error_message = str(error)
            if not isinstance(error, StorageError):
                raise error
        elif stopped and resume_lines:
            result.status = LoadStatus.STOPPED
        else:
            result.status = LoadStatus.COMPLETED

        logger.info(
            "Batch load finished",
            status=result.status.value,
            rows_loaded=result.rows_loaded,
            batches_committed=result.batches_committed,
            batches_failed=result.batches_failed,
            rows_unprocessed=result.rows_unprocessed,
            duration_seconds=round(result.load_duration_seconds, 3),
        )
        return result


def create_batch_loader() -> BatchLoader:
    """Create a BatchLoader from the configured ETL settings"""
    etl = get_settings().etl
    return BatchLoader(
        batch_size=etl.batch_size,
        max_workers=etl.max_workers,
        retry_attempts=etl.retry_attempts,
        retry_backoff_seconds=etl.retry_backoff_seconds,
    )
