"""
Tests for the multi-day redistributor.
"""
import datetime as dt

import pytest

from itinerary_engine.application.redistributor import MultiDayRedistributor
from itinerary_engine.config import Settings
from itinerary_engine.domain.models import DayPlan, GeoPoint, ItemStatus, ItineraryItem, Place, TripPlan


START = dt.date(2024, 6, 15)


def make_item(place_id: str, start: str, end: str, **kwargs) -> ItineraryItem:
    s, e = dt.time.fromisoformat(start), dt.time.fromisoformat(end)
    duration = (e.hour * 60 + e.minute) - (s.hour * 60 + s.minute)
    place = Place(place_id=place_id, name=place_id.title(), lat=38.72, lng=-9.14)
    return ItineraryItem.from_place(place, s, e, duration_minutes=duration, **kwargs)


def make_plan(*days: list[ItineraryItem]) -> TripPlan:
    plan = TripPlan(
        start_date=START,
        end_date=START + dt.timedelta(days=len(days) - 1),
        origin=GeoPoint(lat=38.72, lng=-9.14),
    )
    for offset, items in enumerate(days):
        day = DayPlan(date=START + dt.timedelta(days=offset), items=items)
        day.renumber()
        plan.days.append(day)
    return plan


@pytest.fixture
def redistributor():
    return MultiDayRedistributor(app_settings=Settings())


@pytest.fixture
def plan():
    return make_plan(
        [
            make_item("alfama", "09:00", "11:00"),
            make_item("belem", "11:30", "13:00"),
            make_item("castle", "14:00", "16:00"),
        ],
        [
            make_item("docks", "09:00", "12:00"),
            make_item("estrela", "13:00", "20:00"),
        ],
        [],
    )


class TestAbandonDay:
    @pytest.mark.parametrize("end, placed", [("10:45", True), ("10:46", False)])
    def test_item_may_fill_the_day_exactly(self, redistributor, end, placed):
        plan = make_plan(
            [make_item("alfama", "09:00", end)],
            [make_item("docks", "09:00", "12:00"), make_item("estrela", "13:00", "20:00")],
        )

        result = redistributor.abandon_day(plan, 0, reason="tired", now=dt.datetime(2024, 6, 15, 9, 0))

        if placed:
            moved = result.plan.days[1].items[-1]
            assert (moved.start_time, moved.end_time) == (dt.time(20, 15), dt.time(22, 0))
            assert result.postponed == []
        else:
            assert len(result.plan.days[1].items) == 2
            assert [p.item.name for p in result.postponed] == ["Alfama"]

    def test_items_move_to_first_day_with_room(self, redistributor, plan):
        now = dt.datetime(2024, 6, 15, 11, 0)

        result = redistributor.abandon_day(plan, 0, from_index=1, reason="rain", now=now)

        day0, day1, day2 = result.plan.days
        assert day0.items[0].status == ItemStatus.PENDING
        assert [i.status for i in day0.items[1:]] == [ItemStatus.CANCELED, ItemStatus.CANCELED]
        assert all(i.cancel_reason == "rain" for i in day0.items[1:])
        assert result.canceled_item_ids == [day0.items[1].item_id, day0.items[2].item_id]

        moved = day1.items[-1]
        assert moved.place_id == "belem"
        assert (moved.start_time, moved.end_time) == (dt.time(20, 15), dt.time(21, 45))
        assert moved.travel_minutes_from_previous == 15
        assert moved.status == ItemStatus.PENDING
        assert moved.notes == "Moved from 2024-06-15"
        assert moved.order == 3
        assert moved.item_id != day0.items[1].item_id

        castle = day2.items[0]
        assert castle.place_id == "castle"
        assert (castle.start_time, castle.end_time) == (dt.time(9, 15), dt.time(11, 15))

        assert [(p.name, p.day_index) for p in result.placements] == [("Belem", 1), ("Castle", 2)]
        assert result.postponed == []
        assert result.summary() == "2 canceled, 2 moved, 0 postponed"

    def test_future_days_are_append_only(self, redistributor, plan):
        before = [i.model_dump() for i in plan.days[1].items]

        result = redistributor.abandon_day(plan, 0)

        after = [i.model_dump() for i in result.plan.days[1].items[:len(before)]]
        assert after == before

    def test_input_plan_is_not_modified(self, redistributor, plan):
        snapshot = plan.model_dump()

        redistributor.abandon_day(plan, 0)

        assert plan.model_dump() == snapshot

    def test_unplaceable_items_are_postponed(self, redistributor):
        plan = make_plan(
            [make_item("alfama", "09:00", "11:00")],
            [make_item("docks", "09:00", "21:30")],
        )
        now = dt.datetime(2024, 6, 15, 9, 30)

        result = redistributor.abandon_day(plan, 0, reason="tired", now=now)

        assert result.placements == []
        assert len(result.postponed) == 1
        entry = result.plan.postponed[0]
        assert entry.item.place_id == "alfama"
        assert entry.source_date == START
        assert entry.reason == "tired"
        assert entry.postponed_at == now
        assert len(result.plan.days[1].items) == 1

    def test_last_day_has_no_future(self, redistributor, plan):
        plan.days[2].items.append(make_item("fado", "20:00", "21:00"))

        result = redistributor.abandon_day(plan, 2)

        assert len(result.postponed) == 1
        assert result.plan.days[2].items[0].status == ItemStatus.CANCELED

    def test_place_already_planned_elsewhere_is_not_duplicated(self, redistributor, plan):
        plan.days[2].items.append(make_item("belem", "10:00", "11:00"))

        result = redistributor.abandon_day(plan, 0, from_index=1)

        assert [p.name for p in result.placements] == ["Castle"]
        assert result.plan.duplicate_place_ids() == []

    def test_finished_and_rest_items_are_left_alone(self, redistributor):
        done = make_item("alfama", "09:00", "10:00", status=ItemStatus.COMPLETED)
        rest = make_item("bench", "10:00", "10:30", is_rest_stop=True)
        plan = make_plan([done, rest], [])

        result = redistributor.abandon_day(plan, 0)

        day0 = result.plan.days[0]
        assert day0.items[0].status == ItemStatus.COMPLETED
        assert day0.items[1].status == ItemStatus.CANCELED
        assert result.placements == []
        assert result.postponed == []

    def test_capacity_is_shared_between_moved_items(self, redistributor):
        plan = make_plan(
            [make_item("a", "09:00", "12:00"), make_item("b", "12:00", "15:00")],
            [make_item("c", "09:00", "17:00")],
        )

        result = redistributor.abandon_day(plan, 0)

        # Day 1 has 300 free minutes: room for one 3-hour visit only
        assert [p.name for p in result.placements] == ["A"]
        assert [e.item.name for e in result.postponed] == ["B"]

    @pytest.mark.parametrize("index", [-1, 3])
    def test_bad_day_index(self, redistributor, plan, index):
        with pytest.raises(IndexError):
            redistributor.abandon_day(plan, index)
