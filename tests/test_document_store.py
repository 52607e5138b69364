"""
Tests for the document store and its typed repositories.
"""
import datetime as dt
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from itinerary_engine.domain.errors import CorruptPersistedState
from itinerary_engine.domain.models import (
    BiometricProfile,
    DayPlan,
    FatigueLevel,
    FatigueState,
    Gender,
    GeoPoint,
    ItemStatus,
    ItineraryItem,
    Place,
    PostponedActivity,
    TripPlan,
)
from itinerary_engine.infrastructure.database import Base
from itinerary_engine.infrastructure.document_store import (
    DocumentKey,
    DocumentKind,
    InMemoryDocumentStore,
    ProfileStore,
    SQLDocumentStore,
    TripPlanRepository,
)
from itinerary_engine.infrastructure.models import TRIP_LEVEL


def make_plan() -> TripPlan:
    start = dt.date(2024, 6, 15)
    place = Place(place_id="sagrada", name="Sagrada Familia", lat=41.4036, lng=2.1744)
    visit = ItineraryItem.from_place(place, dt.time(9, 0), dt.time(11, 0), duration_minutes=120)
    dropped = ItineraryItem.from_place(
        Place(place_id="guell", name="Park Guell"), dt.time(12, 0), dt.time(13, 0),
        duration_minutes=60, status=ItemStatus.CANCELED, cancel_reason="rain",
    )
    return TripPlan(
        start_date=start,
        end_date=start + dt.timedelta(days=1),
        origin=GeoPoint(lat=41.3851, lng=2.1734),
        days=[
            DayPlan(date=start, items=[visit, dropped]),
            DayPlan(date=start + dt.timedelta(days=1)),
        ],
        postponed=[PostponedActivity(item=dropped, source_date=start, reason="rain")],
    )


@pytest.fixture
def store():
    return InMemoryDocumentStore()


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_missing_key(self, store):
        assert await store.get(DocumentKey(uuid4(), 0, DocumentKind.FATIGUE)) is None

    @pytest.mark.asyncio
    async def test_set_replaces(self, store):
        key = DocumentKey(uuid4(), 0, DocumentKind.ITEM_STATUSES)

        await store.set(key, {"a": "pending"})
        await store.set(key, {"a": "completed"})

        assert await store.get(key) == {"a": "completed"}

    @pytest.mark.asyncio
    async def test_corrupt_text_raises(self, store):
        key = DocumentKey(uuid4(), TRIP_LEVEL, DocumentKind.TRIP_PLAN)
        store.set_raw(key, "{not json")

        with pytest.raises(CorruptPersistedState):
            await store.get(key)


class TestTripPlanRepository:
    @pytest.mark.asyncio
    async def test_save_and_load(self, store):
        repo = TripPlanRepository(store)
        plan = make_plan()

        await repo.save_trip(plan)
        loaded = await repo.load_trip(plan.trip_id)

        assert loaded == plan

    @pytest.mark.asyncio
    async def test_statuses_and_postponed_are_derived(self, store):
        repo = TripPlanRepository(store)
        plan = make_plan()

        await repo.save_trip(plan)

        statuses = await repo.load_item_statuses(plan.trip_id, 0)
        assert list(statuses.values()) == [ItemStatus.PENDING, ItemStatus.CANCELED]
        assert await repo.load_item_statuses(plan.trip_id, 1) == {}
        postponed = await repo.load_postponed(plan.trip_id)
        assert [entry.item.name for entry in postponed] == ["Park Guell"]

    @pytest.mark.asyncio
    async def test_corrupt_plan_is_treated_as_missing(self, store):
        repo = TripPlanRepository(store)
        trip_id = uuid4()
        store.set_raw(DocumentKey(trip_id, TRIP_LEVEL, DocumentKind.TRIP_PLAN), "\x00garbage")

        assert await repo.load_trip(trip_id) is None

    @pytest.mark.asyncio
    async def test_invalid_plan_is_treated_as_missing(self, store):
        repo = TripPlanRepository(store)
        trip_id = uuid4()
        await store.set(DocumentKey(trip_id, TRIP_LEVEL, DocumentKind.TRIP_PLAN), {"days": "soon"})

        assert await repo.load_trip(trip_id) is None

    @pytest.mark.asyncio
    async def test_unknown_status_values_are_skipped(self, store):
        repo = TripPlanRepository(store)
        trip_id = uuid4()
        await store.set(
            DocumentKey(trip_id, 0, DocumentKind.ITEM_STATUSES),
            {"a": "completed", "b": "teleported"},
        )

        assert await repo.load_item_statuses(trip_id, 0) == {"a": ItemStatus.COMPLETED}

    @pytest.mark.asyncio
    async def test_fatigue_round_trip(self, store):
        repo = TripPlanRepository(store)
        trip_id = uuid4()
        state = FatigueState(percentage=55.5, level=FatigueLevel.MODERATE, daily_budget_kcal=2600)

        assert await repo.load_fatigue(trip_id) is None
        await repo.save_fatigue(trip_id, state)

        assert await repo.load_fatigue(trip_id) == state


class TestProfileStore:
    @pytest.mark.asyncio
    async def test_set_and_get(self, store):
        profiles = ProfileStore(store)
        profile = BiometricProfile(gender=Gender.FEMALE, age=41, weight_kg=62.5, height_cm=168)

        assert await profiles.get() is None
        await profiles.set(profile)

        assert await profiles.get() == profile

    @pytest.mark.asyncio
    async def test_corrupt_profile_resets(self, store):
        store.set_raw(ProfileStore.KEY, "[")

        assert await ProfileStore(store).get() is None


@pytest.mark.asyncio
async def test_sql_store_on_sqlite(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'documents.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sql_store = SQLDocumentStore(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    repo = TripPlanRepository(sql_store)
    plan = make_plan()

    try:
        await repo.save_trip(plan)
        plan.days[1].notices.append("Rain expected")
        await repo.save_trip(plan)

        loaded = await repo.load_trip(plan.trip_id)
        assert loaded.days[1].notices == ["Rain expected"]
        assert await repo.load_item_statuses(plan.trip_id, 0) != {}
        assert await sql_store.get(DocumentKey(uuid4(), 0, DocumentKind.FATIGUE)) is None
    finally:
        await engine.dispose()
