"""Main FastAPI application for the sales CRM."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from app.config import settings

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Import database and ALL models first so they register with SQLAlchemy
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
from app.database import Base, AsyncSessionLocal, init_db
from app.models import (
    User,
    Lead,
    Interaction,
    CalendarEvent,
    Target,
    Customer,
    DailyRevenue,
    Notification,
)

from app.api import auth
from app.routers import (
    user_routes,
    lead_routes,
    interaction_routes,
    calendar_routes,
    target_routes,
    customer_routes,
    revenue_routes,
    notification_routes,
    analytics_routes,
    csv_import_routes,
)

# Import WebSocket
from app.websocket import get_socket_app, get_connection_stats

# Import scheduler
from app.scheduler import start_scheduler, stop_scheduler
from app.services.bootstrap import ensure_bootstrap_admin

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Sales CRM API",
    description="Leads, pipeline, customers, targets, calendar and analytics for sales teams",
    version="1.0.0",
    redirect_slashes=False
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================
# ROUTER REGISTRATION (Order matters!)
# ============================================

# Authentication (must be first)
app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])

# Bulk uploads before the entity routers so /bulk-upload is not read as an id
app.include_router(csv_import_routes.router, prefix="/api/v1", tags=["csv-import"])

app.include_router(user_routes.router)
app.include_router(lead_routes.router)
app.include_router(interaction_routes.router)
app.include_router(calendar_routes.router)
app.include_router(target_routes.router)
app.include_router(customer_routes.router)
app.include_router(revenue_routes.router)
app.include_router(notification_routes.router)
app.include_router(analytics_routes.router, prefix="/api/v1/analytics", tags=["analytics"])

# Mount WebSocket
socket_app = get_socket_app()
app.mount("/socket.io", socket_app)

# ============================================
# HEALTH & ROOT ENDPOINTS
# ============================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "registered_tables": len(Base.metadata.tables),
        "tables": list(Base.metadata.tables.keys()),
        "websocket": get_connection_stats(),
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Sales CRM API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


# ============================================
# STARTUP & SHUTDOWN
# ============================================

@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    logger.info("Starting Sales CRM API...")
    logger.info("=" * 50)
    logger.info(f"Registered {len(Base.metadata.tables)} SQLAlchemy tables:")
    for table_name in sorted(Base.metadata.tables.keys()):
        logger.info(f"  ✓ {table_name}")
    logger.info("=" * 50)
    logger.info("Registered Routes:")
    for route in app.routes:
        if hasattr(route, 'path'):
            logger.info(f"  {route.path}")
    logger.info("=" * 50)

    await init_db()

    async with AsyncSessionLocal() as db:
        await ensure_bootstrap_admin(db)

    if settings.ENABLE_SCHEDULER:
        start_scheduler()

    logger.info("Application started successfully!")


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("Shutting down Sales CRM API...")
    stop_scheduler()
