"""SOS Relay FastAPI Application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sosrelay.config import settings, validate_settings
from sosrelay.logging_config import get_logger, setup_logging
from sosrelay.middleware import CorrelationIdMiddleware
from sosrelay.routers import emergencies, escalations, health, notifications
from sosrelay.services.push_dispatcher import close_dispatcher, get_dispatcher
from sosrelay.services.scheduler import start_scheduler, stop_scheduler
from sosrelay.services.store_factory import close_request_store

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    The push dispatcher is created once here and closed on shutdown;
    request handlers and jobs receive the same instance.
    """
    validate_settings()
    get_dispatcher()
    start_scheduler()
    logger.info("SOS Relay API started")

    yield

    logger.info("Shutting down SOS Relay API...")
    stop_scheduler()
    await close_dispatcher()
    await close_request_store()
    logger.info("SOS Relay API shutdown complete")


app = FastAPI(
    title="SOS Relay API",
    description="Emergency help requests with automatic escalation",
    version="0.1.0",
    lifespan=lifespan,
)

# Middleware (order matters: first added = last executed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(emergencies.router)
app.include_router(escalations.router)
app.include_router(notifications.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "SOS Relay API",
        "version": "0.1.0",
        "docs": "/docs",
    }
