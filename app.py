"""
DoseSentinel Backend
Main FastAPI application: dose recording, missed-dose sweeps and analytics
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configuration and database
from config import settings
from database import init_db, DatabaseHealthCheck
from exceptions import (
    AdherenceError,
    ConflictError,
    StateError,
    SweepAbortedError,
    TransientStoreError,
    ValidationError,
)
from api import include_routers
from tools.scheduler import SweepScheduler

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

    scheduler: Optional[SweepScheduler] = None
    if settings.SWEEP_ENABLED:
        scheduler = SweepScheduler()
        scheduler.start()
    app.state.sweep_scheduler = scheduler

    yield

    # Shutdown
    if scheduler:
        await scheduler.stop()
    logger.info(f"Shutting down {settings.APP_NAME}")


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## DoseSentinel API

    Medication adherence detection for scheduled prescriptions.

    ### Features
    - **Dose Recording**: Taken, missed and skipped reports classified as on time or late
    - **Missed-Dose Sweeps**: Overdue, unreported slots become missed entries and alert guardians
    - **Analytics**: Reliability streak, compliance heatmap, temporal risk, inventory runway, next dose
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

def error_response(status_code: int, message: str, details: Optional[dict] = None) -> JSONResponse:
    content = {
        "error": True,
        "message": message,
        "status_code": status_code,
        "timestamp": datetime.utcnow().isoformat()
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def status_for(exc: AdherenceError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, StateError):
        return 404
    if isinstance(exc, (TransientStoreError, SweepAbortedError)):
        return 503
    return 500


@app.exception_handler(AdherenceError)
async def adherence_exception_handler(request: Request, exc: AdherenceError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return error_response(status_code, exc.message, exc.details)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(exc.status_code, exc.detail)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return error_response(
        500,
        "An unexpected error occurred" if not settings.DEBUG else str(exc)
    )


# ==================== HEALTH ====================

@app.get("/health", tags=["health"])
async def health_check():
    """Liveness plus database connectivity"""
    db_ok = DatabaseHealthCheck.is_connected()
    return {
        "status": "healthy" if db_ok else "degraded",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "database": "connected" if db_ok else "unavailable",
        "sweep_scheduler": bool(
            getattr(app.state, "sweep_scheduler", None) and app.state.sweep_scheduler.running
        ),
        "timestamp": datetime.utcnow().isoformat()
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
