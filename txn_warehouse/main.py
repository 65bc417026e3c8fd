"""
ASGI entry point for the Transaction Warehouse API.
"""

from txn_warehouse.config import get_settings
from txn_warehouse.config.logging import configure_logging
from txn_warehouse.serving.api import create_api_app

settings = get_settings()
configure_logging()

app = create_api_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
