"""
FastAPI Application Entry Point.

This is the main application file for the Fleet Operations Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fleet_backend.app.core.config import settings
from fleet_backend.app.api.v1.router import router as api_v1_router
from fleet_backend.app.db.session import engine, Base
from fleet_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from fleet_backend.app.core.redis_client import ping_redis
from fleet_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from fleet_backend.app.models.truck import Truck
from fleet_backend.app.models.driver import Driver
from fleet_backend.app.models.client import Client
from fleet_backend.app.models.trip import Trip
from fleet_backend.app.models.audit_log import AuditLog

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Truck and driver allocation for fleet trips",
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

    Returns:
        dict: Status and application information
    """
    health = {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "lock_backend": settings.lock_backend,
    }
    if settings.lock_backend == "redis":
        health["redis"] = await ping_redis()
        if not health["redis"]:
            health["status"] = "degraded"
    return health


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Fleet Operations Backend API",
        "docs": "/docs",
        "health": "/health",
    }
