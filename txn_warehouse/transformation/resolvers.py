"""
Dimension and Customer Identity Resolution

Get-or-create for lookup entities. Both resolvers are plain functions over a
session: normalize, then insert-if-absent, then read the id back. The unique
constraint on the lookup table is the only guard against duplicates, so two
workers racing on the same new value both end up with the single surviving
row instead of an error.

Customer identity is structural: the (gender, age, marital_status) tuple
*is* the customer. Two real people sharing demographics resolve to the same
profile. Callers needing per-person identity cannot get it from this data.
"""

from typing import Any, Dict, Iterable, Optional, Tuple, Type

import structlog
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from txn_warehouse.database.models import (
    DIMENSION_MODELS,
    CustomerProfile,
    Gender,
    MaritalStatus,
)
from txn_warehouse.transformation.cleaners import normalize_label

logger = structlog.get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

CustomerKey = Tuple[Gender, int, MaritalStatus]


async def _get_or_create(
    session: AsyncSession,
    model: Type[Any],
    values: Dict[str, Any],
    key_columns: Iterable[str],
) -> int:
    """Insert ``values`` unless a row with the same key exists; return its id"""
    key_columns = list(key_columns)
    lookup = select(model.id).where(*(getattr(model, col) == values[col] for col in key_columns))

    existing = (await session.execute(lookup)).scalar_one_or_none()
    if existing is not None:
        return existing

    dialect = session.get_bind().dialect.name
    dialect_insert = _UPSERT_DIALECTS.get(dialect)

    if dialect_insert is not None:
        stmt = dialect_insert(model).values(**values).on_conflict_do_nothing(index_elements=key_columns)
        await session.execute(stmt)
    else:
        try:
            async with session.begin_nested():
                session.add(model(**values))
        except IntegrityError:
            logger.debug("Lost get-or-create race, re-fetching", table=model.__tablename__)

    return (await session.execute(lookup)).scalar_one()


async def resolve_dimension(session: AsyncSession, dimension: str, value: Optional[str]) -> int:
    """
    Return the id of the dimension entity for ``value``, creating it if needed.

    Args:
        session: Open unit of work
        dimension: One of ``DIMENSION_MODELS``
        value: Raw or already-normalized label

    Raises:
        KeyError: unknown dimension name
    """
    model = DIMENSION_MODELS[dimension]
    canonical_name = normalize_label(value)
    return await _get_or_create(session, model, {"canonical_name": canonical_name}, ["canonical_name"])


async def resolve_customer(
    session: AsyncSession,
    gender: Gender,
    age: int,
    marital_status: MaritalStatus,
) -> int:
    """Return the profile id for this exact demographic tuple, creating it if needed"""
    values = {"gender": Gender(gender), "age": age, "marital_status": MaritalStatus(marital_status)}
    return await _get_or_create(session, CustomerProfile, values, ["gender", "age", "marital_status"])


class ResolutionCache:
    """
    Per-unit-of-work memo of resolved ids.

    Lives exactly as long as one batch transaction: ids created inside a
    batch that later rolls back must not leak into the next batch.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._dimensions: Dict[Tuple[str, str], int] = {}
        self._customers: Dict[CustomerKey, int] = {}

    async def dimension(self, dimension: str, value: str) -> int:
        key = (dimension, normalize_label(value))
        if key not in self._dimensions:
            self._dimensions[key] = await resolve_dimension(self.session, dimension, key[1])
        return self._dimensions[key]

    async def customer(self, gender: Gender, age: int, marital_status: MaritalStatus) -> int:
        key = (gender, age, marital_status)
        if key not in self._customers:
            self._customers[key] = await resolve_customer(self.session, *key)
        return self._customers[key]
