"""
Capacity Scheduling API Server

FastAPI application for the laundry and cleaning marketplace capacity engine.
Serves slot, template, metrics and alert administration plus cron triggers.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from datetime import datetime, timezone
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import time

from capacity_service.api.routes import alerts, capacity, cron, slots, templates
from capacity_service.config import get_settings
from capacity_service.database import get_db
from capacity_service.errors import AuthenticationError, CapacityError
from capacity_service.services.scheduler import start_scheduler, stop_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting capacity scheduling API server...")
    scheduler_enabled = get_settings().enable_scheduler

    # Start background scheduler
    if scheduler_enabled:
        start_scheduler()
        logger.info("Background scheduler started")
    else:
        logger.info("Background scheduler disabled (ENABLE_SCHEDULER=false)")

    yield

    # Shutdown
    logger.info("Shutting down capacity scheduling API server...")
    if scheduler_enabled:
        stop_scheduler()
        logger.info("Background scheduler stopped")


# Create FastAPI application
app = FastAPI(
    title="Capacity Scheduling API",
    description="Capacity scheduling and allocation for laundry and cleaning partners",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# CORS middleware for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing"""
    start_time = time.time()

    # Process request
    response = await call_next(request)

    # Calculate duration
    duration_ms = (time.time() - start_time) * 1000

    # Log request
    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Duration: {duration_ms:.2f}ms"
    )

    return response


# Domain error handler
@app.exception_handler(CapacityError)
async def capacity_exception_handler(request: Request, exc: CapacityError):
    """Render service errors in the standard error envelope"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_dict()),
        headers=headers
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all uncaught exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An internal server error occurred",
                "details": None
            }
        }
    )


# Validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors"""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": jsonable_encoder(exc.errors())
            }
        }
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns server status, database reachability and version information.
    """
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.warning(f"Health check database probe failed: {e}")
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
        "service": "capacity-scheduling-api"
    }


# Include routers
app.include_router(slots.router)
app.include_router(templates.router)
app.include_router(capacity.router)
app.include_router(alerts.router)
app.include_router(cron.router)


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """API root endpoint"""
    return {
        "name": "Capacity Scheduling API",
        "version": "1.0.0",
        "description": "Capacity scheduling and allocation for laundry and cleaning partners",
        "docs": "/api/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
