"""
FastAPI Application Factory

Creates and configures the read-only warehouse API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware
from prometheus_client import make_asgi_app
import structlog

from txn_warehouse.config import get_settings
from txn_warehouse.database.connection import close_database, init_database
from txn_warehouse.serving.api.middleware import RequestLoggingMiddleware
from txn_warehouse.serving.api.routes import aggregates_router, health_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the engine for the lifetime of the app"""
    await init_database()
    logger.info("Transaction warehouse API started")
    yield
    await close_database()
    logger.info("Transaction warehouse API stopped")


def create_api_app(manage_database: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        manage_database: Open and close the engine in the app lifespan;
            disable when the caller already initialized the database

    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Transaction Warehouse API",
        description="Read access to pre-computed transaction summaries",
        version=settings.version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan if manage_database else None,
    )

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(aggregates_router, prefix="/api/v1/aggregates", tags=["Aggregates"])
    app.mount("/metrics", make_asgi_app())

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
        }

    return app
