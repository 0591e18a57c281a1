"""
FastAPI application entry point.
Initializes the FastAPI app, configures logging, and includes the account/inventory routes.
"""

import structlog
from fastapi import FastAPI

from vinesync.config import settings
from vinesync.routers import inventory
from vinesync.utils.logger import configure_logging

# Configure logging first
configure_logging()
logger = structlog.get_logger()

app = FastAPI(
    title="Vinesync Inventory Reconciliation",
    description="Keeps CSV inventory and Vinoshipper inventory in sync across client accounts",
    version="1.0.0",
)

app.include_router(inventory.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event."""
    logger.info(
        "Vinesync started",
        environment=settings.app_environment,
        vinoshipper_api_base_url=settings.vinoshipper_api_base_url,
    )


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "vinesync"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("vinesync.main:app", host="0.0.0.0", port=8000, reload=True)
