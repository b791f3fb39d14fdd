"""
GCP BoQ Calculator - Main Application
FastAPI backend for catalog-driven Bill of Quantities calculation
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gcp_boq import __version__
from gcp_boq.api import calculate, pricing, resources, results
from gcp_boq.config import settings
from gcp_boq.db.database import close_db, init_db
from gcp_boq.exceptions import BoQError
from gcp_boq.pricing.scheduler import pricing_scheduler

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("application_starting", environment=settings.app_env)

    init_db()
    logger.info("database_initialized")

    pricing_scheduler.start()

    yield

    # Shutdown
    logger.info("application_shutdown")
    pricing_scheduler.stop()
    close_db()


# Create FastAPI application
app = FastAPI(
    title="GCP BoQ Calculator",
    description="Bill of Quantities for GCP compute resources from a refreshed pricing catalog",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BoQError)
async def boq_error_handler(request: Request, exc: BoQError):
    """Structured failure body for engine errors."""
    logger.warning(
        "request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": str(exc),
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


# Include routers
app.include_router(calculate.router, prefix="/api", tags=["calculate"])
app.include_router(resources.router, prefix="/api", tags=["resources"])
app.include_router(pricing.router, prefix="/api", tags=["pricing"])
app.include_router(results.router, prefix="/api", tags=["results"])


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "pricing_scheduler": pricing_scheduler.is_running
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "GCP BoQ Calculator API",
        "version": __version__,
        "docs": "/docs"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "gcp_boq.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development"
    )
