"""
Main FastAPI application for biometric attendance reconciliation
"""
import logging
import logging.config

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.config import settings, validate_settings
from app.database import engine, Base
from app import models  # noqa: F401  註冊所有資料表

from app.api import (
    attendance as api_attendance,
    reprocessing as api_reprocessing,
    anomalies as api_anomalies,
    points as api_points,
    leave as api_leave,
    schedules as api_schedules,
    exports as api_exports,
)
from app.services.scheduler import get_scheduler

# Configure logging
logging.config.dictConfig(settings.get_logging_config())
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Biometric Attendance Reconciliation",
    description="Turns biometric device scan logs into per-shift attendance records, points and reports",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_tags=[
        {"name": "attendance", "description": "Biometric uploads and attendance records"},
        {"name": "reprocessing", "description": "Reprocessing and background jobs"},
        {"name": "anomalies", "description": "Scan anomaly detection"},
        {"name": "points", "description": "Attendance points and GBRO"},
        {"name": "leave", "description": "Leave requests"},
        {"name": "schedules", "description": "Employee schedule versions"},
        {"name": "exports", "description": "Attendance exports"},
    ]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        return {
            "status": "healthy",
            "database": "connected",
            "version": "1.0.0"
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")


for module in (
    api_attendance,
    api_reprocessing,
    api_anomalies,
    api_points,
    api_leave,
    api_schedules,
    api_exports,
):
    app.include_router(module.router, prefix=settings.API_PREFIX)


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info("Starting Biometric Attendance Reconciliation")
    validate_settings()

    try:
        # In production, use Alembic migrations instead
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")

    if settings.ENABLE_POINT_EXPIRY_JOB:
        get_scheduler().start()


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown"""
    logger.info("Shutting down Biometric Attendance Reconciliation")

    try:
        get_scheduler().stop()
    except Exception as e:
        logger.error(f"Error stopping scheduler: {e}")


if __name__ == "__main__":
    import uvicorn

    # Development server
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
