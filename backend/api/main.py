"""
StockPulse API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from alerts.scheduler import SchedulerRegistry, build_scheduler
from core.config import get_settings
from core.logging import configure_logging
from db.session import AsyncSessionLocal

settings = get_settings()
configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("StockPulse API starting up", version=settings.app_version)
    yield
    await app.state.alert_registry.stop_all()
    logger.info("StockPulse API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Inventory alerts and inventory change history for commerce shops",
    lifespan=lifespan,
)

app.state.alert_registry = SchedulerRegistry(lambda shop: build_scheduler(shop, settings, AsyncSessionLocal))

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import (
    alerts,
    inventory_history,
    notifications,
    public,
    webhooks,
)

app.include_router(inventory_history.router)
app.include_router(public.router)
app.include_router(alerts.router)
app.include_router(notifications.router)
app.include_router(webhooks.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
