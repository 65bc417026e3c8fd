"""
Aggregate API Endpoints

Read-only access to the summary tables, plus a trigger for a refresh.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from txn_warehouse.aggregation import AGGREGATES, AggregateMaintainer, RefreshResult, read_aggregate
from txn_warehouse.database.connection import get_db_dependency
from txn_warehouse.errors import AggregateRefreshError

router = APIRouter()
logger = structlog.get_logger(__name__)

# One maintainer per process so concurrent refresh requests queue on its lock
maintainer = AggregateMaintainer()


class AggregateInfo(BaseModel):
    """A registered summary table"""
    name: str
    table: str
    description: str


class AggregateRows(BaseModel):
    """Contents of one summary table"""
    name: str
    row_count: int
    refreshed_at: Optional[datetime]
    rows: List[Dict[str, Any]]


@router.get("", response_model=List[AggregateInfo])
async def list_aggregates() -> List[AggregateInfo]:
    """List every registered aggregate."""
    return [
        AggregateInfo(
            name=definition.name,
            table=definition.model.__tablename__,
            description=definition.description,
        )
        for definition in AGGREGATES.values()
    ]


@router.get("/{name}", response_model=AggregateRows)
async def get_aggregate(
    name: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> AggregateRows:
    """
    Get the rows of one aggregate as of its last refresh, ordered by rank.
    """
    if name not in AGGREGATES:
        raise HTTPException(status_code=404, detail=f"Unknown aggregate: {name}")

    df = await read_aggregate(name, session=db)
    rows = df.to_dicts()
    refreshed_at = max((row["refreshed_at"] for row in rows), default=None)

    return AggregateRows(name=name, row_count=len(rows), refreshed_at=refreshed_at, rows=rows)


@router.post("/refresh", response_model=RefreshResult)
async def refresh_aggregates() -> RefreshResult:
    """
    Recompute every aggregate from the fact table.

    Returns 503 when the refresh fails; the previous snapshot stays in place.
    """
    try:
        return await maintainer.refresh()
    except AggregateRefreshError as e:
        logger.error("Refresh via API failed", aggregate=e.aggregate, error=str(e))
        raise HTTPException(status_code=503, detail=str(e))
