"""
Main FastAPI application entrypoint.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from itinerary_engine.config import settings
from itinerary_engine.api.health import API_VERSION, router as health_router
from itinerary_engine.api.trips import router as trips_router
from itinerary_engine.api.fatigue import router as fatigue_router
from itinerary_engine.api.profile import router as profile_router
from itinerary_engine.infrastructure.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan event handler for startup and shutdown.
    """
    # Startup
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting Itinerary Engine API on {settings.host}:{settings.port}")
    logger.info(f"Debug mode: {settings.debug}, document store: {settings.document_store_backend}")
    if settings.document_store_backend == "sql":
        await init_db()

    yield

    # Shutdown
    logger.info("Shutting down Itinerary Engine API")


# Create FastAPI app
app = FastAPI(
    title="Itinerary Engine API",
    description="Adaptive multi-day itinerary scheduling with live replanning",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health_router, prefix="/api")
app.include_router(trips_router, prefix="/api")
app.include_router(fatigue_router, prefix="/api")
app.include_router(profile_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Itinerary Engine API",
        "version": API_VERSION,
        "status": "running",
        "docs": "/docs",
    }
