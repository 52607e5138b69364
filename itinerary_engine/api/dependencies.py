"""
Shared FastAPI dependencies.
"""
from itinerary_engine.application.replanning import ReplanningCoordinator
from itinerary_engine.infrastructure.document_store import get_document_store


def get_coordinator() -> ReplanningCoordinator:
    """Coordinator over the configured document store and providers."""
    return ReplanningCoordinator(get_document_store())
