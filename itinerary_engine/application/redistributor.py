"""
Multi-day redistributor.

Abandoning the rest of a day cancels its open items in place and tries to
append each of them to a later day that still has room. Future days are
only ever appended to: their existing items are never reordered,
shortened or canceled. Activities that fit nowhere are queued on the trip
as postponed.

The plan is deep-copied up front; the input TripPlan is never modified.
"""
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Optional
from uuid import uuid4

from itinerary_engine.config import settings, Settings
from itinerary_engine.domain.models import (
    DayPlan,
    ItemStatus,
    ItineraryItem,
    PostponedActivity,
    TripPlan,
)
from itinerary_engine.domain.time_utils import format_clock, minutes_to_time, parse_clock, time_to_minutes

logger = logging.getLogger(__name__)

ESTIMATED_TRAVEL_MINUTES = 15


@dataclass
class Placement:
    """One abandoned item re-placed on a future day."""
    source_item_id: str
    new_item_id: str
    name: str
    day_index: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time


@dataclass
class RedistributionResult:
    plan: TripPlan
    canceled_item_ids: list[str] = field(default_factory=list)
    placements: list[Placement] = field(default_factory=list)
    postponed: list[PostponedActivity] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{len(self.canceled_item_ids)} canceled, {len(self.placements)} moved, "
            f"{len(self.postponed)} postponed"
        )


@dataclass
class _DayCapacity:
    """Free capacity of a future day, tracked while appending."""
    gap: int
    cursor: int
    day_end: int
    used: int = 0

    def fits(self, duration: int) -> bool:
        # An appended stop can start only after its travel estimate
        remaining = self.day_end - (self.cursor + ESTIMATED_TRAVEL_MINUTES)
        return self.used + duration <= self.gap and duration <= remaining


class MultiDayRedistributor:
    """Moves abandoned activities into free time on later days."""

    def __init__(self, app_settings: Optional[Settings] = None):
        self._settings = app_settings or settings

    def _capacity(self, day: DayPlan) -> _DayCapacity:
        day_start = time_to_minutes(parse_clock(self._settings.redistribution_day_start))
        day_end = time_to_minutes(parse_clock(self._settings.day_end_time))
        active = day.active_items()
        booked = sum(item.duration_minutes for item in active)
        last_end = max((time_to_minutes(item.end_time) for item in active), default=day_start)
        return _DayCapacity(
            gap=(day_end - day_start) - booked,
            cursor=max(last_end, day_start),
            day_end=day_end,
        )

    @staticmethod
    def _moved_copy(item: ItineraryItem, start: int, order: int, source_date: dt.date) -> ItineraryItem:
        moved = item.model_copy(deep=True)
        moved.item_id = uuid4().hex
        moved.status = ItemStatus.PENDING
        moved.cancel_reason = None
        moved.meal_suggestion = None
        moved.rescheduled = False
        moved.start_time = minutes_to_time(start)
        moved.end_time = minutes_to_time(start + item.duration_minutes)
        moved.travel_minutes_from_previous = ESTIMATED_TRAVEL_MINUTES
        moved.travel_instructions = "estimated"
        moved.order = order
        moved.notes = f"Moved from {source_date.isoformat()}"
        return moved

    def abandon_day(
        self,
        plan: TripPlan,
        day_index: int,
        from_index: int = 0,
        reason: str = "day abandoned",
        now: Optional[dt.datetime] = None,
    ) -> RedistributionResult:
        """
        Cancel the open items of a day from `from_index` on and redistribute them.

        Args:
            plan: Current trip plan (not modified)
            day_index: Day being abandoned
            from_index: First item index to abandon
            reason: Cancel reason recorded on every affected item
            now: Timestamp for postponed entries

        Returns:
            RedistributionResult with the new plan, placements and postponed entries

        Raises:
            IndexError: If day_index is not a day of the plan
        """
        if not 0 <= day_index < len(plan.days):
            raise IndexError(f"Day {day_index} not in trip ({len(plan.days)} days)")

        new_plan = plan.model_copy(deep=True)
        source = new_plan.days[day_index]
        result = RedistributionResult(plan=new_plan)

        abandoned: list[ItineraryItem] = []
        for item in source.items[max(0, from_index):]:
            if item.is_open:
                item.transition_to(ItemStatus.CANCELED, reason=reason)
                result.canceled_item_ids.append(item.item_id)
                abandoned.append(item)

        capacities: dict[int, _DayCapacity] = {}
        for item in abandoned:
            if item.is_rest_stop:
                continue
            if item.place_id and item.place_id in self._active_place_ids(new_plan):
                logger.info(f"{item.name} is already planned on another day, not moving it")
                continue

            placement = self._place(new_plan, day_index, item, source.date, capacities)
            if placement:
                result.placements.append(placement)
            else:
                entry = PostponedActivity(
                    item=item.model_copy(deep=True),
                    source_date=source.date,
                    reason=reason,
                    postponed_at=now or dt.datetime.utcnow(),
                )
                result.postponed.append(entry)
                new_plan.postponed.append(entry)

        for placement in result.placements:
            logger.info(
                f"Moved {placement.name} to {placement.date} "
                f"{format_clock(placement.start_time)}-{format_clock(placement.end_time)}"
            )
        logger.info(f"Redistribution of day {day_index}: {result.summary()}")
        return result

    @staticmethod
    def _active_place_ids(plan: TripPlan) -> set[str]:
        return {
            item.place_id
            for day in plan.days
            for item in day.active_items()
            if item.place_id and not item.is_rest_stop
        }

    def _place(
        self,
        plan: TripPlan,
        source_index: int,
        item: ItineraryItem,
        source_date: dt.date,
        capacities: dict[int, _DayCapacity],
    ) -> Optional[Placement]:
        for d in range(source_index + 1, len(plan.days)):
            day = plan.days[d]
            if d not in capacities:
                capacities[d] = self._capacity(day)
            capacity = capacities[d]
            if not capacity.fits(item.duration_minutes):
                continue

            start = capacity.cursor + ESTIMATED_TRAVEL_MINUTES
            moved = self._moved_copy(item, start, len(day.items) + 1, source_date)
            day.items.append(moved)
            capacity.used += item.duration_minutes
            capacity.cursor = start + item.duration_minutes
            return Placement(
                source_item_id=item.item_id,
                new_item_id=moved.item_id,
                name=item.name,
                day_index=d,
                date=day.date,
                start_time=moved.start_time,
                end_time=moved.end_time,
            )
        return None
