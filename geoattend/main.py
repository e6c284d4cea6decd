"""
Main FastAPI application for the GeoAttend service
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from geoattend.config import settings
from geoattend.api import attendance, system
from geoattend.db.database import init_db

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting GeoAttend service...")
    if settings.APP_ENV == "development":
        init_db()
        logger.info("Database tables ensured")

    yield

    logger.info("Shutting down GeoAttend service...")


app = FastAPI(
    title="GeoAttend",
    description="GPS-verified event attendance check-in, check-out and review",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(attendance.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "GeoAttend",
        "version": "1.0.0",
        "status": "running"
    }
