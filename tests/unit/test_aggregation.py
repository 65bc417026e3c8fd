"""
Unit Tests - Summary Aggregation
"""
from datetime import datetime
from decimal import Decimal

import polars as pl
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from txn_warehouse.aggregation import (
    AGGREGATES,
    AggregateDefinition,
    AggregateMaintainer,
    GroupTotal,
    age_band,
    build_summary_rows,
    export_aggregates,
    read_aggregate,
)
from txn_warehouse.database import get_db
from txn_warehouse.database.models import AggByRegion, AggByTier, DimRegion, TransactionFact
from txn_warehouse.errors import AggregateRefreshError
from txn_warehouse.ingestion.batch_loader import BatchLoader
from txn_warehouse.ingestion.pipeline import TransactionPipeline

CENTS = Decimal("0.01")


async def load_sample(sample_csv):
    pipeline = TransactionPipeline(loader=BatchLoader(batch_size=2, max_workers=1))
    return await pipeline.run(sample_csv, refresh=False)


def by_key(df: pl.DataFrame) -> dict:
    return {row["group_key"]: row for row in df.to_dicts()}


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS)


class TestAgeBand:
    """Tests for the age band boundary table"""

    @pytest.mark.parametrize("age, label", [
        (18, "18-24"), (24, "18-24"), (25, "25-34"), (34, "25-34"), (35, "35-44"),
        (54, "45-54"), (55, "55-64"), (64, "55-64"), (65, "65+"), (119, "65+"),
    ])
    def test_boundaries(self, age, label):
        assert age_band(age) == label


class TestBuildSummaryRows:
    """Tests for average and rank derivation"""

    def test_competition_rank_and_average(self):
        refreshed_at = datetime(2024, 1, 1)
        groups = [
            GroupTotal("a", 3, Decimal("100.00")),
            GroupTotal("b", 1, Decimal("250.00")),
            GroupTotal("c", 2, Decimal("100.00")),
            GroupTotal("d", 0, Decimal("0.00")),
        ]

        rows = {row["group_key"]: row for row in build_summary_rows(groups, refreshed_at)}

        assert rows["b"]["rank"] == 1
        assert rows["a"]["rank"] == rows["c"]["rank"] == 2
        assert rows["d"]["rank"] == 4
        assert rows["a"]["average_amount"] == Decimal("33.33")
        assert rows["d"]["average_amount"] == Decimal("0.00")
        assert rows["a"]["refreshed_at"] == refreshed_at

    def test_attributes_are_carried(self):
        rows = build_summary_rows([GroupTotal("north", 1, Decimal("5.00"), {"dimension_id": 7})], datetime(2024, 1, 1))
        assert rows[0]["dimension_id"] == 7


class TestAggregateMaintainer:
    """Tests for AggregateMaintainer"""

    async def test_refresh_on_empty_facts(self, database):
        result = await AggregateMaintainer().refresh()

        assert set(result.row_counts) == set(AGGREGATES)
        assert result.row_counts["region"] == 0
        assert result.row_counts["referral"] == 2
        assert result.row_counts["hour"] == 24
        assert result.row_counts["age_band"] == 6
        assert result.row_counts["demographic"] == 6

        hours = await read_aggregate("hour")
        assert hours.height == 24
        assert hours["transaction_count"].sum() == 0

    async def test_dimension_aggregates_match_facts(self, database, sample_csv):
        await load_sample(sample_csv)
        await AggregateMaintainer().refresh()

        async with get_db() as db:
            expected = {
                row.canonical_name: (row.count, money(row.total))
                for row in await db.execute(
                    select(
                        DimRegion.canonical_name,
                        func.count(TransactionFact.id).label("count"),
                        func.sum(TransactionFact.amount).label("total"),
                    )
                    .join(TransactionFact, TransactionFact.region_id == DimRegion.id)
                    .group_by(DimRegion.canonical_name)
                )
            }

        regions = by_key(await read_aggregate("region"))
        assert {key: (row["transaction_count"], money(row["total_amount"])) for key, row in regions.items()} == expected
        assert regions["north"]["transaction_count"] == 3
        assert money(regions["north"]["total_amount"]) == Decimal("220.49")
        assert money(regions["north"]["average_amount"]) == Decimal("73.50")

    async def test_other_groupings(self, database, sample_csv):
        await load_sample(sample_csv)
        await AggregateMaintainer().refresh()

        payment = by_key(await read_aggregate("payment_method"))
        assert [payment[k]["rank"] for k in ("credit card", "cash", "debit card")] == [1, 2, 3]

        referral = by_key(await read_aggregate("referral"))
        assert referral["direct"]["transaction_count"] == 1
        assert referral["referral"]["transaction_count"] == 2
        assert money(referral["referral"]["total_amount"]) == Decimal("99.99")

        hours = by_key(await read_aggregate("hour"))
        assert {k for k, row in hours.items() if row["transaction_count"]} == {"10", "11", "18"}

        bands = by_key(await read_aggregate("age_band"))
        assert bands["25-34"]["transaction_count"] == 2
        assert money(bands["25-34"]["total_amount"]) == Decimal("140.49")
        assert bands["45-54"]["transaction_count"] == 1
        assert bands["65+"]["transaction_count"] == 0

        demographic = by_key(await read_aggregate("demographic"))
        assert demographic["female/single"]["transaction_count"] == 2
        assert demographic["male/married"]["transaction_count"] == 1
        assert demographic["unknown/married"]["transaction_count"] == 0

    async def test_refresh_replaces_previous_snapshot(self, database, sample_csv):
        maintainer = AggregateMaintainer()
        await maintainer.refresh()
        await load_sample(sample_csv)
        await maintainer.refresh()

        async with get_db() as db:
            rows = (await db.execute(select(func.count()).select_from(AggByRegion))).scalar_one()
        assert rows == 1

    async def test_failed_refresh_keeps_previous_snapshot(self, database, sample_csv):
        await load_sample(sample_csv)
        await AggregateMaintainer().refresh()
        before = await read_aggregate("region")

        async def broken(session):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        definitions = {
            "region": AGGREGATES["region"],
            "tier": AggregateDefinition(name="tier", model=AggByTier, description="", compute=broken),
        }

        with pytest.raises(AggregateRefreshError) as exc:
            await AggregateMaintainer(definitions).refresh()

        assert exc.value.aggregate == "tier"
        after = await read_aggregate("region")
        assert after.to_dicts() == before.to_dicts()


class TestReaders:
    """Tests for DataFrame access and Parquet export"""

    async def test_unknown_aggregate(self, database):
        with pytest.raises(KeyError):
            await read_aggregate("by_planet")

    async def test_export_writes_parquet(self, database, sample_csv, tmp_path):
        await load_sample(sample_csv)
        await AggregateMaintainer().refresh()

        written = await export_aggregates(tmp_path / "export")

        assert set(written) == set(AGGREGATES)
        tiers = pl.read_parquet(written["tier"])
        assert tiers.height == 1
        assert tiers["group_key"].to_list() == ["gold"]
