"""
CareWatch Backend
Main FastAPI application with the dose schedule coordinator
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime, timezone

# Configuration and database
from config import settings
from database import init_db, DatabaseHealthCheck

from api import include_routers
from actions.schedule_coordinator import schedule_coordinator
from services.caretaker_service import caretaker_service

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENV}")

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    # Start the schedule coordinator and watch every known elder
    if settings.COORDINATOR_AUTOSTART:
        schedule_coordinator.start()
        elder_ids = await caretaker_service.list_elder_ids()
        for elder_id in elder_ids:
            schedule_coordinator.watch(elder_id)
        logger.info(f"Schedule coordinator watching {len(elder_ids)} elder(s)")

    yield

    # Shutdown
    schedule_coordinator.stop()
    logger.info(f"Shutting down {settings.APP_NAME}")


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## CareWatch API

    Medication reminders for elders with missed-dose alerts for caretakers.

    ### Features
    - **Daily Schedule**: Generates each day's doses from the medicine catalog
    - **Intake Window**: Doses can be confirmed up to 30 minutes after their time
    - **Missed Doses**: Logged once and reported to every linked caretaker
    - **Catalog Edits**: Editing or force ending a medicine keeps dose history
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Attach modular API routers (prefix /api/v1)
include_routers(app, prefix=settings.API_PREFIX)


# ==================== EXCEPTION HANDLERS ====================

@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "message": exc.detail,
            "status_code": exc.status_code,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "message": "An unexpected error occurred" if not settings.DEBUG else str(exc),
            "status_code": 500,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


# ==================== HEALTH ENDPOINTS ====================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic health check"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check endpoint"""
    db_connected = DatabaseHealthCheck.is_connected()

    return {
        "status": "healthy" if db_connected else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": {
                "status": "up" if db_connected else "down",
                "type": "sqlite" if "sqlite" in settings.DATABASE_URL else "postgresql"
            },
            "coordinator": {
                "status": "running" if schedule_coordinator.is_running else "stopped",
                "watched_elders": len(schedule_coordinator.watched()),
                "tick_interval_seconds": schedule_coordinator.tick_interval
            },
            "messaging": {
                "email": "smtp" if settings.SMTP_HOST else "simulated",
                "sms": bool(settings.TWILIO_ACCOUNT_SID)
            }
        },
        "config": {
            "environment": settings.ENV,
            "schedule_timezone": settings.SCHEDULE_TIMEZONE,
            "debug": settings.DEBUG
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
