"""
Timeline constructor.

Turns an optimized visit order into concrete clock times for one day:

1. Opening clamp - a stop reached before its venue opens starts at opening
   time; the delay carries over to every later stop.
2. Closing clamp - a stop that would run past closing shrinks, but never
   below max(45 min, half its preferred length). If even that does not fit
   the stop is dropped and a notice is recorded. Dropped stops are not
   moved elsewhere.
3. Meal annotation - the first stop overlapping lunch (12:00-14:00) and the
   first overlapping dinner (18:00-20:00) get a meal hint. No time is
   reserved for meals.

The public entry points never raise: an unexpected failure yields the
placeholder plan (every stop 09:00-17:00) with a notice.
"""
import datetime as dt
import logging
import math
from dataclasses import dataclass
from typing import Optional

from itinerary_engine.application.route_optimizer import OptimizedRoute
from itinerary_engine.config import settings, Settings
from itinerary_engine.domain.errors import NoFeasibleSlot
from itinerary_engine.domain.models import DayPlan, ItemStatus, ItineraryItem, MealType, Place
from itinerary_engine.domain.result import Result
from itinerary_engine.domain.time_utils import (
    format_clock,
    intervals_overlap,
    minutes_to_time,
    parse_clock,
    resolve_start_time,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

FALLBACK_START = "09:00"
FALLBACK_END = "17:00"
FALLBACK_NOTICE = "Timeline could not be computed; showing a placeholder schedule"


@dataclass
class MealWindow:
    meal: MealType
    start: int
    end: int
    suggested_at: int

    @property
    def label(self) -> str:
        return "Lunch" if self.meal == MealType.LUNCH else "Dinner"

    def suggestion(self, place_name: str) -> str:
        return (
            f"{self.label} suggestion: consider dining at {place_name} around "
            f"{format_clock(minutes_to_time(self.suggested_at))} or at a nearby restaurant during this visit."
        )


@dataclass
class Slot:
    """Clamped start/end for one stop, in minutes since midnight."""
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start


class TimelineConstructor:
    """Assigns clock times to a sequenced day under venue and meal rules."""

    def __init__(self, app_settings: Optional[Settings] = None):
        """
        Initialize the timeline constructor.

        Args:
            app_settings: Settings override (for testing)
        """
        self._settings = app_settings or settings
        self.meal_windows = [
            self._meal_window(MealType.LUNCH, self._settings.lunch_window),
            self._meal_window(MealType.DINNER, self._settings.dinner_window),
        ]

    @staticmethod
    def _meal_window(meal: MealType, window: tuple[str, str]) -> MealWindow:
        start = time_to_minutes(parse_clock(window[0]))
        end = time_to_minutes(parse_clock(window[1]))
        return MealWindow(meal=meal, start=start, end=end, suggested_at=start + 30)

    # -------------------------------------------------------------------------
    # Clamping rules
    # -------------------------------------------------------------------------

    @staticmethod
    def _window_for(place: Optional[Place], arrival: int) -> tuple[Optional[int], Optional[int]]:
        """
        Opening and closing minute of the window that applies at arrival.

        Picks the first window that has not closed yet. A place with no
        windows is treated as always open.
        """
        if place is None or not place.opening_windows:
            return None, None
        for window in place.opening_windows:
            closes = time_to_minutes(window.closes_at) if window.closes_at else None
            if closes is None or closes > arrival:
                opens = time_to_minutes(window.opens_at) if window.opens_at else None
                return opens, closes
        # Every window has already closed
        last = place.opening_windows[-1]
        return (
            time_to_minutes(last.opens_at) if last.opens_at else None,
            time_to_minutes(last.closes_at),
        )

    def _fit(self, name: str, place: Optional[Place], arrival: int, duration: int) -> Slot:
        """
        Apply the opening and closing clamps to one stop.

        Raises:
            NoFeasibleSlot: If the stop cannot fit before closing
        """
        opens, closes = self._window_for(place, arrival)
        start = arrival
        if opens is not None and start < opens:
            logger.debug(f"{name}: delayed {opens - start} min to opening time")
            start = opens

        end = start + duration
        if closes is not None and end > closes:
            available = closes - start
            minimum = max(self._settings.closing_min_visit_minutes, math.ceil(duration * 0.5))
            if available < minimum:
                raise NoFeasibleSlot(name, max(0, available), minimum)
            logger.debug(f"{name}: shortened from {duration} to {available} min before closing")
            end = closes

        return Slot(start=start, end=end)

    def _annotate_meal(self, item: ItineraryItem, slot: Slot, annotated: set[MealType]) -> None:
        for window in self.meal_windows:
            if window.meal in annotated:
                continue
            if intervals_overlap(slot.start, slot.end, window.start, window.end):
                item.meal_suggestion = window.suggestion(item.name)
                annotated.add(window.meal)
                return

    # -------------------------------------------------------------------------
    # Build from an optimized route
    # -------------------------------------------------------------------------

    def _build(self, route: OptimizedRoute, day_date: dt.date) -> Result[DayPlan]:
        try:
            plan = DayPlan(date=day_date)
            annotated: set[MealType] = set()
            clock = time_to_minutes(route.day_start)

            for stop in route.stops:
                arrival = clock + stop.travel_minutes
                duration = stop.place.preferred_duration_minutes
                try:
                    slot = self._fit(stop.place.name, stop.place, arrival, duration)
                except NoFeasibleSlot as e:
                    logger.warning(f"Dropping stop: {e}")
                    plan.notices.append(
                        f"{stop.place.name} was dropped: it closes before a visit of "
                        f"{e.required_minutes} min fits"
                    )
                    # Clock stays at the previous stop's end
                    continue

                item = ItineraryItem.from_place(
                    stop.place,
                    start_time=minutes_to_time(slot.start),
                    end_time=minutes_to_time(slot.end),
                    duration_minutes=slot.duration,
                    travel_minutes_from_previous=stop.travel_minutes,
                    travel_instructions=stop.travel_instructions or None,
                )
                if stop.travel_is_estimate:
                    item.notes = "Travel time is an estimate"
                self._annotate_meal(item, slot, annotated)
                plan.items.append(item)
                clock = slot.end

            plan.renumber()
            estimates = sum(1 for s in route.stops if s.travel_is_estimate)
            if estimates:
                plan.notices.append(f"{estimates} travel time(s) are estimates")
            return Result.ok(plan)
        except Exception as e:
            return Result.fail(e)

    def fallback_plan(self, places: list[Place], day_date: dt.date) -> DayPlan:
        """Placeholder plan: every stop 09:00-17:00, no travel."""
        start = parse_clock(FALLBACK_START)
        end = parse_clock(FALLBACK_END)
        plan = DayPlan(date=day_date, notices=[FALLBACK_NOTICE])
        for place in places:
            plan.items.append(ItineraryItem.from_place(
                place,
                start_time=start,
                end_time=end,
                duration_minutes=self._settings.default_duration_minutes,
                travel_minutes_from_previous=0,
            ))
        plan.renumber()
        return plan

    def build(self, route: OptimizedRoute, day_date: dt.date) -> DayPlan:
        """
        Build a fully timed day plan. Never raises.

        Args:
            route: Optimized visit order with provisional clock
            day_date: Calendar date of the day

        Returns:
            DayPlan with items renumbered 1..k, or the placeholder plan
        """
        if not route.stops:
            return DayPlan(date=day_date)

        result = self._build(route, day_date)
        if not result.is_ok:
            logger.error(f"Timeline construction failed for {day_date}: {result.error}")
        plan = result.unwrap_or_else(
            lambda error: self.fallback_plan([s.place for s in route.stops], day_date)
        )
        logger.info(f"Timeline for {day_date}: {len(plan.items)} items, {len(plan.notices)} notices")
        return plan

    # -------------------------------------------------------------------------
    # Re-timing an already ordered day
    # -------------------------------------------------------------------------

    def _retime(self, day: DayPlan, start: int) -> Result[DayPlan]:
        try:
            plan = day.model_copy(deep=True)
            annotated: set[MealType] = set()
            for item in plan.items:
                if item.status not in (ItemStatus.PENDING, ItemStatus.CANCELED) and item.meal_suggestion:
                    annotated.update(
                        w.meal for w in self.meal_windows if item.meal_suggestion.startswith(w.label)
                    )

            clock = start
            for item in plan.items:
                if item.status == ItemStatus.CANCELED:
                    continue
                if item.status != ItemStatus.PENDING:
                    # Started or finished items keep their times
                    clock = max(clock, time_to_minutes(item.end_time))
                    continue

                planned_start = time_to_minutes(item.start_time)
                arrival = max(clock + item.travel_minutes_from_previous, planned_start)
                try:
                    slot = self._fit(item.name, item.place, arrival, item.duration_minutes)
                except NoFeasibleSlot as e:
                    logger.warning(f"Re-timing canceled a stop: {e}")
                    item.transition_to(ItemStatus.CANCELED, reason="venue closes before the visit fits")
                    plan.notices.append(f"{item.name} was canceled: it no longer fits before closing")
                    continue

                item.start_time = minutes_to_time(slot.start)
                item.end_time = minutes_to_time(slot.end)
                item.duration_minutes = slot.duration
                item.meal_suggestion = None
                self._annotate_meal(item, slot, annotated)
                clock = slot.end

            plan.renumber()
            return Result.ok(plan)
        except Exception as e:
            return Result.fail(e)

    def retime(self, day: DayPlan, start: Optional[dt.time] = None) -> DayPlan:
        """
        Re-time an already ordered day using the items' stored travel minutes.

        Started and finished items keep their times. Pending items are never
        moved earlier than their planned start, only pushed later when the
        previous stop or an opening time requires it. Pending items that no
        longer fit before closing are canceled (not removed). Never raises;
        on failure the day is returned unchanged.
        """
        anchor = time_to_minutes(start or resolve_start_time(self._settings.day_start_time))
        result = self._retime(day, anchor)
        if not result.is_ok:
            logger.error(f"Re-timing failed for {day.date}: {result.error}")
        return result.unwrap_or_else(lambda error: day.model_copy(deep=True))
