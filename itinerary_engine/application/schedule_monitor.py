"""
Schedule monitor.

Decides, from the live clock and position, which stop is current and
whether the traveler can still make the next commitment.

Lateness is measured against the latest departure that still reaches the
next stop on time, not against the current stop's end: finishing the
current stop late is fine as long as the next start is still reachable.
Skipped and canceled stops are not commitments; the next stop is the
first later one still pending or in progress. With no next stop, lateness
falls back to the current stop's own end.
"""
import datetime as dt
import logging
from typing import Optional

from itinerary_engine.config import settings, Settings
from itinerary_engine.domain.models import (
    DayPlan,
    ItemStatus,
    ItineraryItem,
    PositionSample,
    ScheduleStatus,
)
from itinerary_engine.domain.time_utils import at_time_on, minutes_between, time_to_minutes
from itinerary_engine.infrastructure.routing import haversine_meters

logger = logging.getLogger(__name__)

OPEN_STATUSES = (ItemStatus.PENDING, ItemStatus.IN_PROGRESS)


class ScheduleMonitor:
    """Pure lateness computations over a day's items."""

    def __init__(self, app_settings: Optional[Settings] = None):
        self._settings = app_settings or settings

    def _transition_minutes(self, current: ItineraryItem, nxt: ItineraryItem) -> int:
        if nxt.travel_minutes_from_previous > 0:
            return nxt.travel_minutes_from_previous
        gap = time_to_minutes(nxt.start_time) - time_to_minutes(current.end_time)
        if gap > 0:
            return gap
        return self._settings.default_transition_minutes

    @staticmethod
    def next_commitment_index(items: list[ItineraryItem], current_index: int) -> Optional[int]:
        """Index of the first item after `current_index` that is still pending or in progress."""
        for idx in range(current_index + 1, len(items)):
            if items[idx].status in OPEN_STATUSES:
                return idx
        return None

    def compute_status(
        self,
        items: list[ItineraryItem],
        current_index: int,
        now: dt.datetime,
    ) -> ScheduleStatus:
        """
        Compute the schedule status at `now`.

        Args:
            items: The day's items in order
            current_index: Index of the activity the traveler is at
            now: Current clock time (its date is used for the item times)

        Returns:
            ScheduleStatus; on-time at index 0 for an empty day or a negative index
        """
        if not items or current_index < 0 or current_index >= len(items):
            return ScheduleStatus(current_activity_index=0)

        current = items[current_index]
        next_index = self.next_commitment_index(items, current_index)
        nxt = items[next_index] if next_index is not None else None
        current_end = at_time_on(now, current.end_time)
        tolerance = self._settings.behind_schedule_tolerance_minutes

        if nxt is None:
            delay = max(0, minutes_between(current_end, now))
            return ScheduleStatus(
                current_activity_index=current_index,
                is_behind_schedule=delay > tolerance,
                delay_minutes=delay,
                current_activity_end=current.end_time,
            )

        transition = self._transition_minutes(current, nxt)
        next_start = at_time_on(now, nxt.start_time)
        required_departure = next_start - dt.timedelta(minutes=transition)
        delay = max(0, minutes_between(required_departure, now))

        if delay > tolerance:
            logger.info(
                f"Behind schedule by {delay} min: should have left "
                f"{current.name} at {required_departure:%H:%M}"
            )

        return ScheduleStatus(
            current_activity_index=current_index,
            is_behind_schedule=delay > tolerance,
            delay_minutes=delay,
            next_activity_start=nxt.start_time,
            current_activity_end=current.end_time,
            required_departure=required_departure.time(),
        )

    def is_at_item(self, item: ItineraryItem, sample: PositionSample) -> bool:
        """True if the sample is within the arrival radius of the item's place."""
        if item.place is None or not item.place.has_coordinates():
            return False
        distance = haversine_meters(sample.point(), item.place.location())
        return distance <= self._settings.arrival_radius_meters

    def locate_current_activity(self, items: list[ItineraryItem], sample: PositionSample) -> Optional[int]:
        """Index of the first non-canceled item the traveler is at, if any."""
        for idx, item in enumerate(items):
            if item.status == ItemStatus.CANCELED:
                continue
            if self.is_at_item(item, sample):
                return idx
        return None

    def current_index(self, day: DayPlan, sample: Optional[PositionSample] = None) -> int:
        """
        Best guess of the current activity.

        The item at the traveler's position wins; otherwise the item in
        progress; otherwise the last finished one; otherwise 0.
        """
        if sample is not None:
            located = self.locate_current_activity(day.items, sample)
            if located is not None:
                return located
        in_progress = [i for i, item in enumerate(day.items) if item.status == ItemStatus.IN_PROGRESS]
        if in_progress:
            return in_progress[0]
        finished = [
            i for i, item in enumerate(day.items)
            if item.status in (ItemStatus.COMPLETED, ItemStatus.SKIPPED)
        ]
        return finished[-1] if finished else 0

    def advance_item_states(self, day: DayPlan, sample: PositionSample) -> DayPlan:
        """
        Return a copy of the day with item states moved along by position.

        The pending item at the traveler's location becomes in_progress; an
        in-progress item the traveler has left becomes completed.
        """
        updated = day.model_copy(deep=True)
        located = self.locate_current_activity(updated.items, sample)

        for idx, item in enumerate(updated.items):
            if item.status == ItemStatus.IN_PROGRESS and idx != located:
                item.transition_to(ItemStatus.COMPLETED)
                logger.info(f"Completed {item.name}")

        if located is not None and updated.items[located].status == ItemStatus.PENDING:
            updated.items[located].transition_to(ItemStatus.IN_PROGRESS)
            logger.info(f"Arrived at {updated.items[located].name}")

        return updated
