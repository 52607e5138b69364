"""
Tests for the multi-day trip planner.
"""
import datetime as dt

import pytest

from itinerary_engine.application.trip_planner import TripPlanner, draft_anchors, trip_days
from itinerary_engine.config import Settings
from itinerary_engine.domain.models import GeoPoint, Place
from itinerary_engine.infrastructure.routing import RouteResult, RoutingProvider


ORIGIN = GeoPoint(lat=48.2082, lng=16.3738)
START = dt.date(2024, 6, 15)
END = dt.date(2024, 6, 17)


class MockRoutingProvider(RoutingProvider):
    async def route(self, origin: GeoPoint, destination: GeoPoint, mode: str = "transit") -> RouteResult:
        return RouteResult(duration_seconds=600, instructions="Tram", mode=mode)


def create_test_places(count: int = 8) -> list[Place]:
    # p0 has the best score, p7 the worst
    return [
        Place(
            place_id=f"p{i}",
            name=f"Place {i}",
            lat=48.20 + i * 0.002,
            lng=16.37,
            preferred_duration_minutes=60,
            score=float(count - i),
        )
        for i in range(count)
    ]


@pytest.fixture
def planner():
    return TripPlanner(
        MockRoutingProvider(),
        app_settings=Settings(max_stops_per_day=3, routing_batch_delay_seconds=0.0),
    )


def test_trip_days():
    assert trip_days(START, END) == [START, START + dt.timedelta(days=1), END]
    assert trip_days(START, START) == [START]
    with pytest.raises(ValueError):
        trip_days(END, START)


def test_draft_anchors_must_see_first():
    days = trip_days(START, END)

    anchors = draft_anchors(days, create_test_places(), {"p5", "p6"})

    assert list(anchors.values()) == [["p5"], ["p6"], ["p0"]]


def test_draft_anchors_more_days_than_places():
    days = trip_days(START, END)

    anchors = draft_anchors(days, create_test_places(2), set())

    assert list(anchors.values()) == [["p0"], ["p1"], []]


class TestPlanTrip:
    @pytest.mark.asyncio
    async def test_each_place_used_once(self, planner):
        plan = await planner.plan_trip(ORIGIN, START, END, create_test_places(), must_see_ids={"p5"})

        assert [d.date for d in plan.days] == trip_days(START, END)
        assert [d.anchor_place_ids for d in plan.days] == [["p5"], ["p0"], ["p1"]]
        assert sorted(i.place_id for i in plan.days[0].items) == ["p2", "p3", "p5"]
        assert sorted(i.place_id for i in plan.days[1].items) == ["p0", "p4", "p6"]
        assert sorted(i.place_id for i in plan.days[2].items) == ["p1", "p7"]
        assert plan.duplicate_place_ids() == []

    @pytest.mark.asyncio
    async def test_pool_holds_unused_places(self, planner):
        plan = await planner.plan_trip(ORIGIN, START, END, create_test_places(), must_see_ids={"p5"})

        assert [p.place_id for p in plan.days[0].pool] == ["p4", "p6", "p7"]
        assert [p.place_id for p in plan.days[1].pool] == ["p7"]
        assert plan.days[2].pool == []

    @pytest.mark.asyncio
    async def test_pool_is_capped(self):
        planner = TripPlanner(
            MockRoutingProvider(),
            app_settings=Settings(max_stops_per_day=1, pool_size=2, routing_batch_delay_seconds=0.0),
        )

        plan = await planner.plan_trip(ORIGIN, START, START, create_test_places())

        assert [p.place_id for p in plan.days[0].pool] == ["p1", "p2"]

    @pytest.mark.asyncio
    async def test_invalid_start_time_falls_back(self, planner):
        plan = await planner.plan_trip(ORIGIN, START, START, create_test_places(1), start_time="25:99")

        item = plan.days[0].items[0]
        assert item.start_time == dt.time(9, 10)
        assert item.travel_minutes_from_previous == 10

    @pytest.mark.asyncio
    async def test_custom_start_time(self, planner):
        plan = await planner.plan_trip(ORIGIN, START, START, create_test_places(1), start_time="10:30")

        assert plan.days[0].items[0].start_time == dt.time(10, 40)

    @pytest.mark.asyncio
    async def test_avoid_by_id_or_name(self, planner):
        plan = await planner.plan_trip(
            ORIGIN, START, START, create_test_places(4), avoid=["p0", "place 2"]
        )

        assert sorted(i.place_id for i in plan.days[0].items) == ["p1", "p3"]

    @pytest.mark.asyncio
    async def test_failing_day_gets_empty_plan(self, planner, monkeypatch):
        original = planner.plan_day
        broken_date = START + dt.timedelta(days=1)

        async def flaky(origin, day_date, candidates, start_time=None, token=None):
            if day_date == broken_date:
                raise RuntimeError("routing exploded")
            return await original(origin, day_date, candidates, start_time, token=token)

        monkeypatch.setattr(planner, "plan_day", flaky)

        plan = await planner.plan_trip(ORIGIN, START, END, create_test_places())

        assert len(plan.days) == 3
        assert plan.days[1].items == []
        assert plan.days[1].notices == ["Day could not be planned: routing exploded"]
        assert plan.days[0].items and plan.days[2].items

    @pytest.mark.asyncio
    async def test_end_before_start(self, planner):
        with pytest.raises(ValueError):
            await planner.plan_trip(ORIGIN, END, START, create_test_places())


@pytest.mark.asyncio
async def test_plan_day_without_candidates(planner):
    day = await planner.plan_day(ORIGIN, START, [])

    assert day.items == []
    assert day.date == START
