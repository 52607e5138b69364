"""
Persistent document store.

Documents are JSON values keyed by (trip_id, day_index, kind). Trip plans,
per-item status lists, fatigue snapshots, the postponed queue and the
biometric profile are all stored through this one interface. Decoding
failures raise CorruptPersistedState; the typed repositories log them and
return None so the engine can reinitialize defaults.
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, NamedTuple, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from itinerary_engine.config import settings
from itinerary_engine.domain.errors import CorruptPersistedState
from itinerary_engine.domain.models import (
    BiometricProfile,
    FatigueState,
    ItemStatus,
    PostponedActivity,
    TripPlan,
)
from itinerary_engine.infrastructure.models import TRIP_LEVEL, DocumentModel

logger = logging.getLogger(__name__)

PROFILE_OWNER = UUID(int=0)


class DocumentKind:
    TRIP_PLAN = "trip_plan"
    ITEM_STATUSES = "item_statuses"
    FATIGUE = "fatigue"
    POSTPONED = "postponed"
    PROFILE = "profile"


class DocumentKey(NamedTuple):
    trip_id: UUID
    day_index: int
    kind: str

    def __str__(self) -> str:
        return f"{self.trip_id}/{self.day_index}/{self.kind}"


def _decode(key: DocumentKey, raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise CorruptPersistedState(str(key), str(e)) from e


class DocumentStore(ABC):
    """Key-value store for JSON documents."""

    @abstractmethod
    async def get(self, key: DocumentKey) -> Any:
        """
        Load a document.

        Returns:
            Decoded JSON value, or None if the key is absent

        Raises:
            CorruptPersistedState: If the stored text is not valid JSON
        """
        pass

    @abstractmethod
    async def set(self, key: DocumentKey, value: Any) -> None:
        """Store a JSON-serializable value, replacing any previous one."""
        pass


class InMemoryDocumentStore(DocumentStore):
    """Process-local store. Keeps serialized text so behaviour matches SQL."""

    def __init__(self):
        self._documents: dict[DocumentKey, str] = {}

    async def get(self, key: DocumentKey) -> Any:
        return _decode(key, self._documents.get(key))

    async def set(self, key: DocumentKey, value: Any) -> None:
        self._documents[key] = json.dumps(value)

    def set_raw(self, key: DocumentKey, raw: str) -> None:
        """Store text as-is (used to import documents written elsewhere)."""
        self._documents[key] = raw


class SQLDocumentStore(DocumentStore):
    """Document store on the `documents` table (SQLAlchemy async)."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _find(self, session: AsyncSession, key: DocumentKey) -> Optional[DocumentModel]:
        result = await session.execute(
            select(DocumentModel).where(
                DocumentModel.trip_id == key.trip_id,
                DocumentModel.day_index == key.day_index,
                DocumentModel.kind == key.kind,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, key: DocumentKey) -> Any:
        async with self.session_factory() as session:
            row = await self._find(session, key)
            return _decode(key, row.payload if row else None)

    async def set(self, key: DocumentKey, value: Any) -> None:
        payload = json.dumps(value)
        async with self.session_factory() as session:
            row = await self._find(session, key)
            if row is None:
                session.add(DocumentModel(
                    trip_id=key.trip_id,
                    day_index=key.day_index,
                    kind=key.kind,
                    payload=payload,
                ))
            else:
                row.payload = payload
            await session.commit()


class TripPlanRepository:
    """Typed access to the documents of one trip."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def _load(self, key: DocumentKey) -> Any:
        try:
            return await self.store.get(key)
        except CorruptPersistedState as e:
            logger.error(f"{e}; treating as missing")
            return None

    async def load_trip(self, trip_id: UUID) -> Optional[TripPlan]:
        data = await self._load(DocumentKey(trip_id, TRIP_LEVEL, DocumentKind.TRIP_PLAN))
        if data is None:
            return None
        try:
            return TripPlan.model_validate(data)
        except ValidationError as e:
            logger.error(f"Stored trip plan {trip_id} failed validation: {e}")
            return None

    async def save_trip(self, plan: TripPlan) -> None:
        """Persist the plan plus its derived per-day status lists and postponed queue."""
        await self.store.set(
            DocumentKey(plan.trip_id, TRIP_LEVEL, DocumentKind.TRIP_PLAN),
            plan.model_dump(mode="json"),
        )
        for day_index, day in enumerate(plan.days):
            statuses = {item.item_id: item.status.value for item in day.items}
            await self.store.set(
                DocumentKey(plan.trip_id, day_index, DocumentKind.ITEM_STATUSES),
                statuses,
            )
        await self.store.set(
            DocumentKey(plan.trip_id, TRIP_LEVEL, DocumentKind.POSTPONED),
            [entry.model_dump(mode="json") for entry in plan.postponed],
        )
        logger.debug(f"Saved trip {plan.trip_id} ({len(plan.days)} days)")

    async def load_item_statuses(self, trip_id: UUID, day_index: int) -> dict[str, ItemStatus]:
        data = await self._load(DocumentKey(trip_id, day_index, DocumentKind.ITEM_STATUSES))
        if not isinstance(data, dict):
            return {}
        statuses = {}
        for item_id, value in data.items():
            try:
                statuses[item_id] = ItemStatus(value)
            except ValueError:
                logger.warning(f"Unknown status {value!r} for item {item_id}, skipping")
        return statuses

    async def load_postponed(self, trip_id: UUID) -> list[PostponedActivity]:
        data = await self._load(DocumentKey(trip_id, TRIP_LEVEL, DocumentKind.POSTPONED))
        if not isinstance(data, list):
            return []
        try:
            return [PostponedActivity.model_validate(entry) for entry in data]
        except ValidationError as e:
            logger.error(f"Stored postponed queue for {trip_id} failed validation: {e}")
            return []

    async def load_fatigue(self, trip_id: UUID) -> Optional[FatigueState]:
        data = await self._load(DocumentKey(trip_id, TRIP_LEVEL, DocumentKind.FATIGUE))
        if data is None:
            return None
        try:
            return FatigueState.model_validate(data)
        except ValidationError as e:
            logger.error(f"Stored fatigue state for {trip_id} failed validation: {e}")
            return None

    async def save_fatigue(self, trip_id: UUID, state: FatigueState) -> None:
        await self.store.set(
            DocumentKey(trip_id, TRIP_LEVEL, DocumentKind.FATIGUE),
            state.model_dump(mode="json"),
        )


class ProfileStore:
    """Biometric profile of the (single) traveler."""

    KEY = DocumentKey(PROFILE_OWNER, TRIP_LEVEL, DocumentKind.PROFILE)

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self) -> Optional[BiometricProfile]:
        try:
            data = await self.store.get(self.KEY)
        except CorruptPersistedState as e:
            logger.error(f"{e}; profile reset")
            return None
        if data is None:
            return None
        try:
            return BiometricProfile.model_validate(data)
        except ValidationError as e:
            logger.error(f"Stored profile failed validation: {e}")
            return None

    async def set(self, profile: BiometricProfile) -> None:
        await self.store.set(self.KEY, profile.model_dump(mode="json"))


_memory_store: Optional[InMemoryDocumentStore] = None


def get_document_store() -> DocumentStore:
    """
    Factory function to get the document store based on settings.

    Returns:
        DocumentStore instance
    """
    global _memory_store

    if settings.document_store_backend == "memory":
        if _memory_store is None:
            logger.info("Using in-memory document store")
            _memory_store = InMemoryDocumentStore()
        return _memory_store

    from itinerary_engine.infrastructure.database import AsyncSessionLocal
    return SQLDocumentStore(AsyncSessionLocal)
