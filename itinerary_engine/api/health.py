"""
Health check endpoint.
"""
from datetime import datetime, timezone

from fastapi import APIRouter

from itinerary_engine.config import settings


router = APIRouter(tags=["health"])

API_VERSION = "0.1.0"


@router.get("/health")
async def health():
    """Liveness probe with the configured providers."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": API_VERSION,
        "providers": {
            "routing": settings.routing_provider,
            "place_catalog": settings.place_catalog_provider,
            "weather": settings.weather_provider,
            "document_store": settings.document_store_backend,
        },
    }
