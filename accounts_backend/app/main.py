"""
FastAPI Application Entry Point.

This is the main application file for the Accounts Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from accounts_backend.app.core.config import settings
from accounts_backend.app.core.logging_config import configure_logging
from accounts_backend.app.core.observability import ObservabilityMiddleware
from accounts_backend.app.core.redis_client import close_redis, ping_redis
from accounts_backend.app.api.v1.router import router as api_v1_router
from accounts_backend.app.db.session import engine, Base
from accounts_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from fastapi import HTTPException

# Import models to ensure they are registered with Base
from accounts_backend.app.models.customer import Customer
from accounts_backend.app.models.party import Party
from accounts_backend.app.models.ledger_entry import LedgerEntry
from accounts_backend.app.models.sale import Sale
from accounts_backend.app.models.invoice import Invoice
from accounts_backend.app.models.sale_receipt import SaleReceipt
from accounts_backend.app.models.invoice_payment import InvoicePayment
from accounts_backend.app.models.inventory_item import InventoryItem
from accounts_backend.app.models.stock_movement import StockMovement

logger = logging.getLogger("accounts.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Configures logging.
    2. Creates database tables on startup.
    3. Closes the Redis connection and the database pool on shutdown.
    """
    configure_logging(settings.log_level, settings.log_format)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Accounts backend started", extra={"events_enabled": settings.events_enabled})
    yield
    await close_redis()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Ledger, settlement and inventory core for small-business accounting",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Redis being down degrades event delivery only, so it is reported, not fatal.
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Accounts Backend API",
        "docs": "/docs",
        "health": "/health",
    }
