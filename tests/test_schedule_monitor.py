"""
Tests for the schedule monitor.
"""
import datetime as dt

import pytest

from itinerary_engine.application.schedule_monitor import ScheduleMonitor
from itinerary_engine.config import Settings
from itinerary_engine.domain.models import DayPlan, ItemStatus, ItineraryItem, Place, PositionSample


DAY = dt.date(2024, 6, 15)
MUSEUM = Place(place_id="museum", name="Museum", lat=52.3600, lng=4.8852)
PARK = Place(place_id="park", name="Park", lat=52.3580, lng=4.8686, category="park")
GALLERY = Place(place_id="gallery", name="Gallery", lat=52.3660, lng=4.8930)
CAFE = Place(place_id="cafe", name="Cafe", lat=52.3620, lng=4.8800, category="cafe")


def at(hour: int, minute: int = 0) -> dt.datetime:
    return dt.datetime.combine(DAY, dt.time(hour, minute))


def make_item(place: Place, start: str, end: str, travel: int = 0, **kwargs) -> ItineraryItem:
    s, e = dt.time.fromisoformat(start), dt.time.fromisoformat(end)
    duration = (e.hour * 60 + e.minute) - (s.hour * 60 + s.minute)
    return ItineraryItem.from_place(
        place, s, e, duration_minutes=duration, travel_minutes_from_previous=travel, **kwargs
    )


@pytest.fixture
def monitor():
    return ScheduleMonitor(app_settings=Settings())


@pytest.fixture
def items():
    return [
        make_item(MUSEUM, "09:00", "10:00"),
        make_item(PARK, "10:30", "11:30", travel=15),
    ]


class TestComputeStatus:
    def test_small_delay_is_tolerated(self, monitor, items):
        status = monitor.compute_status(items, 0, at(10, 20))

        assert status.delay_minutes == 5
        assert status.is_behind_schedule is False
        assert status.is_on_time
        assert status.required_departure == dt.time(10, 15)
        assert status.next_activity_start == dt.time(10, 30)
        assert status.current_activity_end == dt.time(10, 0)

    def test_large_delay_is_behind(self, monitor, items):
        status = monitor.compute_status(items, 0, at(10, 35))

        assert status.delay_minutes == 20
        assert status.is_behind_schedule is True

    def test_overstaying_is_fine_while_next_start_is_reachable(self, monitor, items):
        # Past the current end, but still before the required departure
        status = monitor.compute_status(items, 0, at(10, 10))

        assert status.delay_minutes == 0
        assert not status.is_behind_schedule

    def test_last_item_measures_against_its_own_end(self, monitor, items):
        status = monitor.compute_status(items, 1, at(11, 50))

        assert status.delay_minutes == 20
        assert status.is_behind_schedule
        assert status.next_activity_start is None
        assert status.required_departure is None

    def test_gap_is_used_without_travel_time(self, monitor):
        day = [make_item(MUSEUM, "09:00", "10:00"), make_item(PARK, "10:20", "11:00")]

        status = monitor.compute_status(day, 0, at(10, 15))

        # Departure required at 10:00, gap of 20 minutes
        assert status.required_departure == dt.time(10, 0)
        assert status.delay_minutes == 15

    def test_default_transition_when_back_to_back(self, monitor):
        day = [make_item(MUSEUM, "09:00", "10:00"), make_item(PARK, "10:00", "11:00")]

        status = monitor.compute_status(day, 0, at(9, 50))

        assert status.required_departure == dt.time(9, 45)
        assert status.delay_minutes == 5

    def test_skipped_next_item_is_not_a_commitment(self, monitor):
        day = [
            make_item(MUSEUM, "10:00", "11:00"),
            make_item(PARK, "11:15", "12:15", travel=15),
            make_item(GALLERY, "12:30", "13:30", travel=15),
        ]
        day[0].transition_to(ItemStatus.IN_PROGRESS)
        day[1].transition_to(ItemStatus.SKIPPED)

        status = monitor.compute_status(day, 0, at(11, 30))

        assert status.next_activity_start == dt.time(12, 30)
        assert status.required_departure == dt.time(12, 15)
        assert status.delay_minutes == 0
        assert not status.is_behind_schedule

    def test_replacement_follows_canceled_item(self, monitor):
        day = [
            make_item(MUSEUM, "10:00", "11:00"),
            make_item(PARK, "11:15", "12:15", travel=15),
            make_item(CAFE, "11:15", "11:45", travel=15),
            make_item(GALLERY, "12:30", "13:30", travel=15),
        ]
        day[1].transition_to(ItemStatus.CANCELED, reason="replaced by Cafe")

        status = monitor.compute_status(day, 0, at(11, 5))

        assert status.next_activity_start == dt.time(11, 15)
        assert status.required_departure == dt.time(11, 0)
        assert status.delay_minutes == 5

    def test_only_closed_items_left_measures_against_own_end(self, monitor, items):
        items[1].transition_to(ItemStatus.SKIPPED)

        status = monitor.compute_status(items, 0, at(10, 25))

        assert status.next_activity_start is None
        assert status.delay_minutes == 25
        assert status.is_behind_schedule

    def test_next_commitment_index(self, monitor, items):
        assert monitor.next_commitment_index(items, 0) == 1
        items[1].transition_to(ItemStatus.CANCELED, reason="closed")
        assert monitor.next_commitment_index(items, 0) is None

    @pytest.mark.parametrize("index", [-1, 2, 10])
    def test_out_of_range_index(self, monitor, items, index):
        status = monitor.compute_status(items, index, at(12))

        assert status.current_activity_index == 0
        assert status.is_on_time

    def test_empty_day(self, monitor):
        status = monitor.compute_status([], 0, at(12))

        assert status.current_activity_index == 0
        assert status.delay_minutes == 0


class TestPosition:
    def sample(self, place: Place, hour: int, minute: int = 0) -> PositionSample:
        return PositionSample(lat=place.lat, lng=place.lng, timestamp=at(hour, minute))

    def test_locate_current_activity(self, monitor, items):
        assert monitor.locate_current_activity(items, self.sample(PARK, 10, 40)) == 1
        far = PositionSample(lat=52.40, lng=4.90, timestamp=at(10))
        assert monitor.locate_current_activity(items, far) is None

    def test_canceled_items_are_never_current(self, monitor, items):
        items[1].transition_to(ItemStatus.CANCELED, reason="weather")

        assert monitor.locate_current_activity(items, self.sample(PARK, 10, 40)) is None

    def test_advance_item_states(self, monitor, items):
        day = DayPlan(date=DAY, items=items)

        arrived = monitor.advance_item_states(day, self.sample(MUSEUM, 9, 5))
        assert arrived.items[0].status == ItemStatus.IN_PROGRESS
        assert day.items[0].status == ItemStatus.PENDING

        moved_on = monitor.advance_item_states(arrived, self.sample(PARK, 10, 35))
        assert moved_on.items[0].status == ItemStatus.COMPLETED
        assert moved_on.items[1].status == ItemStatus.IN_PROGRESS

    def test_current_index_fallbacks(self, monitor, items):
        day = DayPlan(date=DAY, items=items)
        assert monitor.current_index(day) == 0

        day.items[0].transition_to(ItemStatus.IN_PROGRESS)
        day.items[0].transition_to(ItemStatus.COMPLETED)
        assert monitor.current_index(day) == 0

        day.items[1].transition_to(ItemStatus.IN_PROGRESS)
        assert monitor.current_index(day) == 1
        assert monitor.current_index(day, self.sample(MUSEUM, 11)) == 0
