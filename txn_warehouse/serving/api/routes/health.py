"""
Health Check Endpoints

Liveness and readiness probes for orchestration systems.
"""

from datetime import datetime
from typing import Dict, Any

from fastapi import APIRouter, Response
from pydantic import BaseModel
from sqlalchemy import func, select

from txn_warehouse.config import get_settings
from txn_warehouse.database.connection import check_database_health, get_db
from txn_warehouse.database.models import TransactionFact

settings = get_settings()
router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check covering database connectivity and the size of the fact table.
    """
    checks: Dict[str, Any] = {"database": await check_database_health()}
    overall_status = "healthy"

    if checks["database"].get("status") == "healthy":
        async with get_db() as db:
            facts = (await db.execute(select(func.count(TransactionFact.id)))).scalar_one()
        checks["warehouse"] = {"transaction_facts": facts}
    else:
        overall_status = "unhealthy"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.utcnow(),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.

    Returns 503 until the database answers.
    """
    db_health = await check_database_health()
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}

    return {"status": "ready"}
