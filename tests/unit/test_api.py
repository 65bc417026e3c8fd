"""
Unit Tests - Serving API
"""
from decimal import Decimal

import httpx
import pytest

from txn_warehouse.aggregation import AGGREGATES
from txn_warehouse.ingestion.batch_loader import BatchLoader
from txn_warehouse.ingestion.pipeline import TransactionPipeline
from txn_warehouse.serving.api import create_api_app


@pytest.fixture
async def client(database):
    app = create_api_app(manage_database=False)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


class TestHealth:
    """Tests for health endpoints"""

    async def test_health(self, client):
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["warehouse"]["transaction_facts"] == 0

    async def test_probes(self, client):
        assert (await client.get("/api/v1/health/live")).json() == {"status": "alive"}
        assert (await client.get("/api/v1/health/ready")).json() == {"status": "ready"}

    async def test_request_id_header(self, client):
        response = await client.get("/api/v1/health/live", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


class TestAggregates:
    """Tests for aggregate endpoints"""

    async def test_list(self, client):
        response = await client.get("/api/v1/aggregates")

        assert response.status_code == 200
        assert {item["name"] for item in response.json()} == set(AGGREGATES)

    async def test_unknown_aggregate_is_404(self, client):
        response = await client.get("/api/v1/aggregates/by_planet")
        assert response.status_code == 404

    async def test_refresh_then_read(self, client, sample_csv):
        await TransactionPipeline(loader=BatchLoader(batch_size=10, max_workers=1)).run(sample_csv, refresh=False)

        refresh = await client.post("/api/v1/aggregates/refresh")
        assert refresh.status_code == 200
        assert refresh.json()["row_counts"]["tier"] == 1

        response = await client.get("/api/v1/aggregates/tier")
        assert response.status_code == 200
        body = response.json()
        assert body["row_count"] == 1
        row = body["rows"][0]
        assert row["group_key"] == "gold"
        assert row["transaction_count"] == 3
        assert Decimal(str(row["total_amount"])) == Decimal("220.49")
        assert body["refreshed_at"] is not None
