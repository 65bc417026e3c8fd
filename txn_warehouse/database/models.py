"""
Database Models - Normalized Transaction Schema

Star schema for the transaction warehouse:

Fact Tables:
- TransactionFact: one row per validated source transaction

Dimension Tables:
- DimRegion, DimTier, DimEmploymentStatus, DimPaymentMethod: integer-keyed
  lookups created on first sight of a canonical label
- CustomerProfile: customers reconstructed from their demographic tuple

Summary Tables:
- One table per pre-computed aggregate, fully rebuilt on each refresh
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Type

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class Gender(str, Enum):
    """Customer gender, ``unknown`` when the source omits it"""
    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"


class MaritalStatus(str, Enum):
    """Customer marital status"""
    SINGLE = "single"
    MARRIED = "married"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimensionMixin:
    """
    Shared shape of every categorical lookup.

    Rows are immutable once created and never deleted. ``canonical_name`` is
    the normalized (trimmed, case-folded) form of all spellings mapped to it.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    canonical_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class DimRegion(DimensionMixin, Base):
    """Region dimension"""
    __tablename__ = "dim_region"


class DimTier(DimensionMixin, Base):
    """Customer tier dimension"""
    __tablename__ = "dim_tier"


class DimEmploymentStatus(DimensionMixin, Base):
    """Employment label dimension"""
    __tablename__ = "dim_employment_status"


class DimPaymentMethod(DimensionMixin, Base):
    """Payment channel dimension"""
    __tablename__ = "dim_payment_method"


DIMENSION_MODELS: Dict[str, Type[DimensionMixin]] = {
    "region": DimRegion,
    "tier": DimTier,
    "employment_status": DimEmploymentStatus,
    "payment_method": DimPaymentMethod,
}


class CustomerProfile(Base):
    """
    Customer Profile Table

    The source has no stable customer identifier, so a customer is the
    (gender, age, marital_status) tuple itself. Distinct people sharing
    demographics collapse into one profile.
    """
    __tablename__ = "dim_customer_profile"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    gender: Mapped[Gender] = mapped_column(
        SQLEnum(Gender, name="gender", values_callable=_enum_values), nullable=False
    )
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    marital_status: Mapped[MaritalStatus] = mapped_column(
        SQLEnum(MaritalStatus, name="marital_status", values_callable=_enum_values), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("gender", "age", "marital_status", name="uq_customer_profile_demographics"),
        CheckConstraint("age > 0 AND age < 120", name="ck_customer_profile_age"),
    )


# =============================================================================
# FACT TABLES
# =============================================================================

class TransactionFact(Base):
    """
    Transaction Fact Table

    Grain: one source transaction. The primary key is the source-provided
    transaction id, which is what makes re-running a load idempotent.
    Rows are inserted once and never updated.
    """
    __tablename__ = "fact_transactions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    # Dimension foreign keys
    customer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_customer_profile.id"), nullable=False
    )
    region_id: Mapped[int] = mapped_column(Integer, ForeignKey("dim_region.id"), nullable=False)
    tier_id: Mapped[int] = mapped_column(Integer, ForeignKey("dim_tier.id"), nullable=False)
    employment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_employment_status.id"), nullable=False
    )
    payment_method_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_payment_method.id"), nullable=False
    )

    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_referral: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # Audit
    loaded_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_fact_transactions_amount"),
        Index("ix_fact_transactions_customer", "customer_id"),
        Index("ix_fact_transactions_region", "region_id"),
        Index("ix_fact_transactions_tier", "tier_id"),
        Index("ix_fact_transactions_employment", "employment_id"),
        Index("ix_fact_transactions_payment_method", "payment_method_id"),
        Index("ix_fact_transactions_occurred_at", "occurred_at"),
    )


# =============================================================================
# SUMMARY AGGREGATES
# =============================================================================

class SummaryMixin:
    """
    Shared measures of every summary table.

    Summary rows are derived data: each refresh deletes and re-inserts the
    whole table inside one transaction.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=0)
    average_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    rank: Mapped[Optional[int]] = mapped_column(Integer)
    refreshed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class AggByRegion(SummaryMixin, Base):
    """Transactions per region"""
    __tablename__ = "agg_by_region"

    dimension_id: Mapped[int] = mapped_column(Integer, nullable=False)


class AggByTier(SummaryMixin, Base):
    """Transactions per tier"""
    __tablename__ = "agg_by_tier"

    dimension_id: Mapped[int] = mapped_column(Integer, nullable=False)


class AggByEmploymentStatus(SummaryMixin, Base):
    """Transactions per employment label"""
    __tablename__ = "agg_by_employment_status"

    dimension_id: Mapped[int] = mapped_column(Integer, nullable=False)


class AggByPaymentMethod(SummaryMixin, Base):
    """Transactions per payment channel"""
    __tablename__ = "agg_by_payment_method"

    dimension_id: Mapped[int] = mapped_column(Integer, nullable=False)


class AggByDemographic(SummaryMixin, Base):
    """Transactions per (gender, marital status) pair"""
    __tablename__ = "agg_by_demographic"

    gender: Mapped[str] = mapped_column(String(20), nullable=False)
    marital_status: Mapped[str] = mapped_column(String(20), nullable=False)


class AggByReferral(SummaryMixin, Base):
    """Referral versus direct transactions"""
    __tablename__ = "agg_by_referral"

    is_referral: Mapped[bool] = mapped_column(Boolean, nullable=False)


class AggByHour(SummaryMixin, Base):
    """Transactions per hour of day"""
    __tablename__ = "agg_by_hour"

    hour: Mapped[int] = mapped_column(Integer, nullable=False)


class AggByAgeBand(SummaryMixin, Base):
    """Transactions per customer age band"""
    __tablename__ = "agg_by_age_band"
