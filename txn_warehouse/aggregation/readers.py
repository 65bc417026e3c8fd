"""
Aggregate readers: summary tables as polars DataFrames and Parquet exports.
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from txn_warehouse.aggregation.definitions import AGGREGATES
from txn_warehouse.database.connection import get_db

logger = structlog.get_logger(__name__)

BASE_COLUMNS = ["group_key", "transaction_count", "total_amount", "average_amount", "rank", "refreshed_at"]


def _columns_for(model) -> List[str]:
    extra = [
        column.name
        for column in model.__table__.columns
        if column.name not in BASE_COLUMNS and column.name != "id"
    ]
    return BASE_COLUMNS + extra


async def _fetch_rows(session: AsyncSession, name: str) -> List[Dict]:
    definition = AGGREGATES[name]
    model = definition.model
    columns = _columns_for(model)
    stmt = select(*(getattr(model, col) for col in columns)).order_by(model.rank, model.group_key)
    result = await session.execute(stmt)
    return [dict(row._mapping) for row in result]


async def read_aggregate(name: str, session: Optional[AsyncSession] = None) -> pl.DataFrame:
    """
    Read one summary table, ordered by rank.

    Raises:
        KeyError: ``name`` is not a registered aggregate
    """
    if name not in AGGREGATES:
        raise KeyError(f"Unknown aggregate: {name}")

    if session is not None:
        rows = await _fetch_rows(session, name)
    else:
        async with get_db() as db:
            rows = await _fetch_rows(db, name)

    columns = _columns_for(AGGREGATES[name].model)
    if not rows:
        return pl.DataFrame({col: [] for col in columns})
    return pl.DataFrame(rows)


async def export_aggregates(directory: Union[str, Path]) -> Dict[str, Path]:
    """Write every summary table to ``<directory>/<name>.parquet``"""
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)

    written: Dict[str, Path] = {}
    async with get_db() as db:
        for name in AGGREGATES:
            df = await read_aggregate(name, session=db)
            path = target / f"{name}.parquet"
            df.write_parquet(path)
            written[name] = path
            logger.info("Exported aggregate", aggregate=name, rows=df.height, path=str(path))

    return written
