"""
Aggregate Maintainer

Recomputes every summary relation from the fact table and swaps the new
contents in atomically. Aggregates are never patched incrementally: a
refresh deletes and re-inserts each summary table inside one transaction,
so readers keep seeing the previous snapshot until the commit, and a
failure anywhere discards the whole rebuild.
"""

import asyncio
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import structlog
from prometheus_client import Histogram
from pydantic import BaseModel, Field
from sqlalchemy import delete, insert, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from txn_warehouse.aggregation.definitions import (
    AGGREGATES,
    CENTS,
    AggregateDefinition,
    GroupTotal,
)
from txn_warehouse.database.connection import get_db
from txn_warehouse.errors import AggregateRefreshError

logger = structlog.get_logger(__name__)

# Transaction-scoped advisory lock id guarding refreshes across processes
REFRESH_LOCK_KEY = 7_420_118

REFRESH_DURATION = Histogram(
    "txn_warehouse_refresh_seconds",
    "Time spent rebuilding all summary relations",
)


class RefreshResult(BaseModel):
    """Result of one refresh cycle"""
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    row_counts: Dict[str, int] = Field(default_factory=dict)


def build_summary_rows(groups: Iterable[GroupTotal], refreshed_at: datetime) -> List[Dict[str, Any]]:
    """
    Turn group totals into summary rows.

    ``average_amount`` is total / count rounded to cents (zero for empty
    groups); ``rank`` is the competition rank by ``total_amount`` descending,
    ties sharing a rank.
    """
    groups = list(groups)
    ordered = sorted(groups, key=lambda g: g.total_amount, reverse=True)

    ranks: Dict[str, int] = {}
    previous: Optional[Decimal] = None
    current_rank = 0
    for position, group in enumerate(ordered, start=1):
        if group.total_amount != previous:
            current_rank = position
            previous = group.total_amount
        ranks[group.group_key] = current_rank

    rows = []
    for group in groups:
        if group.transaction_count:
            average = (group.total_amount / group.transaction_count).quantize(CENTS)
        else:
            average = Decimal("0.00")
        rows.append({
            "group_key": group.group_key,
            "transaction_count": group.transaction_count,
            "total_amount": group.total_amount,
            "average_amount": average,
            "rank": ranks[group.group_key],
            "refreshed_at": refreshed_at,
            **group.attributes,
        })
    return rows


class AggregateMaintainer:
    """
    Maintains the pre-computed summary relations.

    Refreshes are exclusive: concurrent calls in this process queue on a
    lock, and on PostgreSQL a transaction-scoped advisory lock rejects a
    refresh already running elsewhere.

    Example:
        maintainer = AggregateMaintainer()
        result = await maintainer.refresh()
    """

    def __init__(self, definitions: Optional[Dict[str, AggregateDefinition]] = None):
        self.definitions = definitions if definitions is not None else AGGREGATES
        self._lock = asyncio.Lock()

    async def _begin_snapshot(self, session: AsyncSession) -> None:
        """Pin one snapshot for the whole rebuild where the store supports it"""
        if session.get_bind().dialect.name != "postgresql":
            return

        await session.connection(execution_options={"isolation_level": "REPEATABLE READ"})
        acquired = (
            await session.execute(
                text("SELECT pg_try_advisory_xact_lock(:key)"), {"key": REFRESH_LOCK_KEY}
            )
        ).scalar_one()
        if not acquired:
            raise AggregateRefreshError("Another refresh is already in progress")

    async def _rebuild(self, session: AsyncSession, definition: AggregateDefinition, refreshed_at: datetime) -> int:
        groups = await definition.compute(session)
        rows = build_summary_rows(groups, refreshed_at)

        await session.execute(delete(definition.model))
        if rows:
            await session.execute(insert(definition.model), rows)
        return len(rows)

    async def refresh(self) -> RefreshResult:
        """
        Recompute every aggregate and swap it into place atomically.

        Returns:
            RefreshResult: timing and row count per aggregate

        Raises:
            AggregateRefreshError: the rebuild failed; previous contents remain
        """
        async with self._lock:
            started_at = datetime.utcnow()
            started = time.perf_counter()
            row_counts: Dict[str, int] = {}
            current: Optional[str] = None

            logger.info("Starting aggregate refresh", aggregates=list(self.definitions))

            try:
                async with get_db() as session:
                    await self._begin_snapshot(session)
                    for name, definition in self.definitions.items():
                        current = name
                        row_counts[name] = await self._rebuild(session, definition, started_at)
            except AggregateRefreshError:
                raise
            except (SQLAlchemyError, OSError) as e:
                logger.error("Aggregate refresh failed, previous snapshot kept", aggregate=current, error=str(e))
                raise AggregateRefreshError(f"Refresh of {current!r} failed: {e}", aggregate=current) from e

            duration = time.perf_counter() - started
            REFRESH_DURATION.observe(duration)

            result = RefreshResult(
                started_at=started_at,
                completed_at=datetime.utcnow(),
                duration_seconds=duration,
                row_counts=row_counts,
            )
            logger.info(
                "Aggregate refresh completed",
                duration_seconds=round(duration, 3),
                row_counts=row_counts,
            )
            return result
