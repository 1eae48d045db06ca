"""
FastAPI application entry point.

Run with: uvicorn api.main:app --reload
"""
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api.routes import resources
from db import init_db
from services.resource_service import get_default_resource_service
from services.sweeper import CacheSweeper
from settings import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create app
app = FastAPI(
    title="Resource Resolver API",
    description="API for locating legal, shelter, healthcare and food assistance near a map viewport",
    version="0.1.0",
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(resources.router, prefix="/resources", tags=["resources"])

_sweeper: Optional[CacheSweeper] = None


@app.on_event("startup")
def startup_event():
    """Initialize database tables and start the expiry sweeper."""
    global _sweeper
    init_db()
    if settings.CACHE_SWEEPER_ENABLED:
        service = get_default_resource_service()
        _sweeper = CacheSweeper(
            service.geo_cache,
            service.query_cache,
            interval_seconds=settings.CACHE_SWEEP_INTERVAL_SECONDS,
        )
        _sweeper.start()
        logger.info("Cache sweeper running every %ss", settings.CACHE_SWEEP_INTERVAL_SECONDS)


@app.on_event("shutdown")
def shutdown_event():
    global _sweeper
    if _sweeper is not None:
        _sweeper.stop()
        _sweeper = None


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Resource Resolver API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
