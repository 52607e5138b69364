"""
SQLAlchemy ORM models for the document store.
These are separate from domain models to maintain clean architecture.
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from itinerary_engine.infrastructure.database import Base
from itinerary_engine.infrastructure.db_types import GUID


# day_index value for documents that belong to the whole trip
TRIP_LEVEL = -1


class DocumentModel(Base):
    """
    One JSON document keyed by (trip_id, day_index, kind).

    Kinds: trip_plan, item_statuses, fatigue, postponed, profile.
    The profile document uses the nil UUID as its trip_id.
    """
    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint("trip_id", "day_index", "kind", name="uq_documents_key"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(GUID(), nullable=False, index=True)
    day_index = Column(Integer, nullable=False, default=TRIP_LEVEL)
    kind = Column(String(64), nullable=False)

    # Raw JSON text: decoding is done by the store so corrupt rows can be detected
    payload = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
