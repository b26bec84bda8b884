"""
Fleet Trajectory Analytics - FastAPI Backend

Main application entry point and configuration.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fleet_analytics.api.reports import close_geocoder, fleet_router, router as analytics_router, vehicles_router
from fleet_analytics.services.repository import get_repository, init_repository


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# Default data folder (can be overridden via environment)
DEFAULT_DATA_FOLDER = Path("./data/vehicles")
DATA_FOLDER_ENV = "FLEET_DATA_FOLDER"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Fleet Trajectory Analytics Backend")

    repo = get_repository()
    if repo.data_folder is None:
        data_folder = Path(os.getenv(DATA_FOLDER_ENV, str(DEFAULT_DATA_FOLDER)))
        if data_folder.exists():
            init_repository(data_folder)
            logger.info(f"Initialized repository with folder: {data_folder}")
        else:
            logger.info(f"Data folder not found: {data_folder}")
            logger.info(f"Set {DATA_FOLDER_ENV} to a folder of per-vehicle CSV files")

    yield

    # Shutdown
    logger.info("Shutting down Fleet Trajectory Analytics Backend")
    close_geocoder()


# Create FastAPI app
app = FastAPI(
    title="Fleet Trajectory Analytics",
    description="""
    Backend API for GPS trajectory analytics.

    ## Features
    - Segment position streams into trips and stops
    - Mileage reports per hour, day or month with period comparison
    - Driving incidents (harsh acceleration/braking, sharp steering, overspeed, high rpm) and scores
    - Speed infractions against a configurable limit
    - Fleet-wide reports fanned out over every vehicle

    ## Data Flow
    1. Post positions to /analytics/* for ad-hoc analysis, or
    2. List vehicles via GET /vehicles and request /vehicles/{id}/mileage or /activity
    3. Fleet reports via GET /fleet/incidents, /fleet/infractions, /fleet/scores
    """,
    version="0.1.0",
    lifespan=lifespan,
)


# CORS middleware (allow all origins for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(analytics_router)
app.include_router(vehicles_router)
app.include_router(fleet_router)


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {
        "name": "Fleet Trajectory Analytics",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    repo = get_repository()

    return {
        "status": "healthy",
        "data_folder": str(repo.data_folder) if repo.data_folder else None,
        "vehicle_count": len(repo.list_vehicles()),
    }
