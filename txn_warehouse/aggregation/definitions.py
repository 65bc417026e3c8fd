"""
Summary Aggregate Definitions

The fixed registry of pre-computed aggregates. Each definition knows its
target table, how to group the fact table, and the full domain of its
group keys, so every aggregate yields a row per key even when no fact
falls into it (an empty fact table gives zero-count rows, not an error).
"""

from dataclasses import dataclass, field
from decimal import Decimal
from itertools import product
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from txn_warehouse.database.models import (
    AggByAgeBand,
    AggByDemographic,
    AggByEmploymentStatus,
    AggByHour,
    AggByPaymentMethod,
    AggByReferral,
    AggByRegion,
    AggByTier,
    CustomerProfile,
    DimEmploymentStatus,
    DimPaymentMethod,
    DimRegion,
    DimTier,
    Gender,
    MaritalStatus,
    SummaryMixin,
    TransactionFact,
)

CENTS = Decimal("0.01")

# (lower bound inclusive, upper bound exclusive, label)
AGE_BANDS: List[Tuple[int, Optional[int], str]] = [
    (0, 25, "18-24"),
    (25, 35, "25-34"),
    (35, 45, "35-44"),
    (45, 55, "45-54"),
    (55, 65, "55-64"),
    (65, None, "65+"),
]

REFERRAL_KEYS = {False: "direct", True: "referral"}


@dataclass
class GroupTotal:
    """Count and exact sum of the facts in one group"""
    group_key: str
    transaction_count: int = 0
    total_amount: Decimal = Decimal("0.00")
    attributes: Dict[str, Any] = field(default_factory=dict)


ComputeFn = Callable[[AsyncSession], Awaitable[List[GroupTotal]]]


@dataclass(frozen=True)
class AggregateDefinition:
    """A summary relation: target table plus the query that fills it"""
    name: str
    model: Type[SummaryMixin]
    description: str
    compute: ComputeFn


def to_decimal(value: Any) -> Decimal:
    """Normalize a SUM() result (None, Decimal, float or int) to cents"""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS)


def age_band(age: int) -> str:
    """Label of the band an age falls into"""
    for lower, upper, label in AGE_BANDS:
        if age >= lower and (upper is None or age < upper):
            return label
    raise ValueError(f"age {age} below every band")


def age_band_expression(column):
    """SQL CASE expression equivalent to ``age_band``"""
    whens = [(column < upper, label) for _, upper, label in AGE_BANDS if upper is not None]
    return case(*whens, else_=AGE_BANDS[-1][2])


def _measures():
    return (
        func.count(TransactionFact.id).label("transaction_count"),
        func.sum(TransactionFact.amount).label("total_amount"),
    )


def _merge_domain(
    observed: Dict[str, GroupTotal],
    domain: List[GroupTotal],
) -> List[GroupTotal]:
    """Fill in zero rows for every domain key with no facts"""
    merged = []
    for empty in domain:
        merged.append(observed.pop(empty.group_key, empty))
    merged.extend(observed.values())
    return merged


# =============================================================================
# COMPUTE FUNCTIONS
# =============================================================================

def dimension_compute(dimension_model, fact_column: str) -> ComputeFn:
    """Group facts by one dimension id; every dimension entity gets a row"""

    async def compute(session: AsyncSession) -> List[GroupTotal]:
        count, total = _measures()
        stmt = (
            select(dimension_model.id, dimension_model.canonical_name, count, total)
            .select_from(dimension_model)
            .outerjoin(TransactionFact, getattr(TransactionFact, fact_column) == dimension_model.id)
            .group_by(dimension_model.id, dimension_model.canonical_name)
            .order_by(dimension_model.id)
        )
        result = await session.execute(stmt)
        return [
            GroupTotal(
                group_key=row.canonical_name,
                transaction_count=row.transaction_count or 0,
                total_amount=to_decimal(row.total_amount),
                attributes={"dimension_id": row.id},
            )
            for row in result
        ]

    return compute


async def demographic_compute(session: AsyncSession) -> List[GroupTotal]:
    """Group facts by (gender, marital status)"""
    count, total = _measures()
    stmt = (
        select(CustomerProfile.gender, CustomerProfile.marital_status, count, total)
        .select_from(TransactionFact)
        .join(CustomerProfile, TransactionFact.customer_id == CustomerProfile.id)
        .group_by(CustomerProfile.gender, CustomerProfile.marital_status)
    )
    observed = {}
    for row in await session.execute(stmt):
        gender, status = Gender(row.gender), MaritalStatus(row.marital_status)
        key = f"{gender.value}/{status.value}"
        observed[key] = GroupTotal(
            group_key=key,
            transaction_count=row.transaction_count,
            total_amount=to_decimal(row.total_amount),
            attributes={"gender": gender.value, "marital_status": status.value},
        )

    domain = [
        GroupTotal(
            group_key=f"{gender.value}/{status.value}",
            attributes={"gender": gender.value, "marital_status": status.value},
        )
        for gender, status in product(Gender, MaritalStatus)
    ]
    return _merge_domain(observed, domain)


async def referral_compute(session: AsyncSession) -> List[GroupTotal]:
    """Group facts by referral flag"""
    count, total = _measures()
    stmt = select(TransactionFact.is_referral, count, total).group_by(TransactionFact.is_referral)
    observed = {}
    for row in await session.execute(stmt):
        flag = bool(row.is_referral)
        observed[REFERRAL_KEYS[flag]] = GroupTotal(
            group_key=REFERRAL_KEYS[flag],
            transaction_count=row.transaction_count,
            total_amount=to_decimal(row.total_amount),
            attributes={"is_referral": flag},
        )

    domain = [
        GroupTotal(group_key=key, attributes={"is_referral": flag})
        for flag, key in REFERRAL_KEYS.items()
    ]
    return _merge_domain(observed, domain)


async def hour_compute(session: AsyncSession) -> List[GroupTotal]:
    """Group facts by hour of day of ``occurred_at``"""
    count, total = _measures()
    hour = func.extract("hour", TransactionFact.occurred_at).label("hour")
    stmt = select(hour, count, total).group_by(hour)
    observed = {}
    for row in await session.execute(stmt):
        value = int(row.hour)
        key = f"{value:02d}"
        observed[key] = GroupTotal(
            group_key=key,
            transaction_count=row.transaction_count,
            total_amount=to_decimal(row.total_amount),
            attributes={"hour": value},
        )

    domain = [GroupTotal(group_key=f"{h:02d}", attributes={"hour": h}) for h in range(24)]
    return _merge_domain(observed, domain)


async def age_band_compute(session: AsyncSession) -> List[GroupTotal]:
    """Group facts by the customer's age band"""
    # Banding happens in a subquery so GROUP BY targets a plain column
    # rather than a parameterized CASE expression
    banded = (
        select(
            age_band_expression(CustomerProfile.age).label("age_band"),
            TransactionFact.id.label("fact_id"),
            TransactionFact.amount.label("amount"),
        )
        .select_from(TransactionFact)
        .join(CustomerProfile, TransactionFact.customer_id == CustomerProfile.id)
        .subquery()
    )
    stmt = select(
        banded.c.age_band,
        func.count(banded.c.fact_id).label("transaction_count"),
        func.sum(banded.c.amount).label("total_amount"),
    ).group_by(banded.c.age_band)
    observed = {}
    for row in await session.execute(stmt):
        observed[row.age_band] = GroupTotal(
            group_key=row.age_band,
            transaction_count=row.transaction_count,
            total_amount=to_decimal(row.total_amount),
        )

    domain = [GroupTotal(group_key=label) for _, _, label in AGE_BANDS]
    return _merge_domain(observed, domain)


# =============================================================================
# REGISTRY
# =============================================================================

AGGREGATES: Dict[str, AggregateDefinition] = {
    "region": AggregateDefinition(
        name="region",
        model=AggByRegion,
        description="Transaction count and amount per region",
        compute=dimension_compute(DimRegion, "region_id"),
    ),
    "tier": AggregateDefinition(
        name="tier",
        model=AggByTier,
        description="Transaction count and amount per customer tier",
        compute=dimension_compute(DimTier, "tier_id"),
    ),
    "employment_status": AggregateDefinition(
        name="employment_status",
        model=AggByEmploymentStatus,
        description="Transaction count and amount per employment label",
        compute=dimension_compute(DimEmploymentStatus, "employment_id"),
    ),
    "payment_method": AggregateDefinition(
        name="payment_method",
        model=AggByPaymentMethod,
        description="Transaction count and amount per payment channel",
        compute=dimension_compute(DimPaymentMethod, "payment_method_id"),
    ),
    "demographic": AggregateDefinition(
        name="demographic",
        model=AggByDemographic,
        description="Transaction count and amount per gender and marital status",
        compute=demographic_compute,
    ),
    "referral": AggregateDefinition(
        name="referral",
        model=AggByReferral,
        description="Referral versus direct transactions",
        compute=referral_compute,
    ),
    "hour": AggregateDefinition(
        name="hour",
        model=AggByHour,
        description="Transaction count and amount per hour of day",
        compute=hour_compute,
    ),
    "age_band": AggregateDefinition(
        name="age_band",
        model=AggByAgeBand,
        description="Transaction count and amount per customer age band",
        compute=age_band_compute,
    ),
}
