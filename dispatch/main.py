"""
FastAPI Application Entry Point - Dispatch Service
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from dispatch.config import settings
from dispatch.database import init_db
from dispatch.api import orders, bulk, audit, users, health, subscriptions

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Dispatch Service",
    description="Order lifecycle, driver assignment and bulk operations for the delivery marketplace",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(orders.router)
app.include_router(bulk.router)
app.include_router(audit.router)
app.include_router(users.router)
app.include_router(subscriptions.router)

# Prometheus metrics
Instrumentator().instrument(app).expose(app)


@app.on_event("startup")
def startup_event():
    """Initialize database on startup"""
    logger.info("Starting %s...", settings.SERVICE_NAME)
    init_db()
    logger.info("✓ Database initialized")
    logger.info("✓ Notification channel: %s", settings.NOTIFICATION_CHANNEL)
    logger.info("✓ Bulk write ceiling: %s", settings.BATCH_CEILING)
    logger.info("✓ %s is running on port %s", settings.SERVICE_NAME, settings.SERVICE_PORT)


@app.on_event("shutdown")
def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down %s...", settings.SERVICE_NAME)
