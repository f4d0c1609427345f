"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from retention_sync.core.config import get_settings
from retention_sync.core.database import database
from retention_sync.api import health, integrations
from retention_sync.integrations.registry import build_default_registry
from retention_sync.repositories import MongoCustomerStore, MongoIntegrationStore
from retention_sync.services import (
    IntegrationSyncService,
    RedisSyncLockManager,
    SyncLockManager,
    SyncService,
)
from retention_sync.utils.logging import setup_logging

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

# Get settings
settings = get_settings()


def build_lock_manager():
    if settings.lock_backend == "redis":
        return RedisSyncLockManager(settings.redis_url, ttl_seconds=settings.lock_ttl_seconds)
    return SyncLockManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting up sync engine...")
    logger.info(f"Service: {settings.service_name}")
    logger.info(f"Environment: {settings.environment}")
    await database.connect()
    
    integration_store = MongoIntegrationStore(database, settings)
    customer_store = MongoCustomerStore(database)
    await customer_store.ensure_indexes()
    
    registry = build_default_registry(settings)
    locks = build_lock_manager()
    sync_service = IntegrationSyncService(
        SyncService(integration_store, customer_store, registry, locks=locks, settings=settings),
        settings=settings,
    )
    await sync_service.start()
    
    app.state.integration_store = integration_store
    app.state.registry = registry
    app.state.sync_service = sync_service
    
    yield
    
    # Shutdown
    logger.info("Shutting down sync engine...")
    await sync_service.stop()
    await registry.aclose()
    if isinstance(locks, RedisSyncLockManager):
        await locks.close()
    await database.disconnect()


# Create FastAPI app
app = FastAPI(
    title="Retention Platform Sync Engine",
    description="Synchronizes customer data from connected platforms",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(
    integrations.router,
    prefix="/api/v1/integrations",
    tags=["integrations"]
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "retention_sync.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
    )
