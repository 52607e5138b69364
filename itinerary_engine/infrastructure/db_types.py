"""
Cross-dialect column types for the document store.
"""
from __future__ import annotations

import uuid
from sqlalchemy.types import TypeDecorator, CHAR
from sqlalchemy.dialects.postgresql import UUID as PGUUID


def as_uuid(value) -> uuid.UUID:
    """Coerce a UUID or its string form to uuid.UUID."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class GUID(TypeDecorator):
    """
    Trip identity column.
    Native UUID on PostgreSQL (asyncpg), CHAR(36) on SQLite (aiosqlite).
    """
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        trip_uuid = as_uuid(value)
        if dialect.name == "postgresql":
            return trip_uuid
        return str(trip_uuid)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return as_uuid(value)
