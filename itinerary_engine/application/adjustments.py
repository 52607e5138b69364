"""
Adjustment generator.

When the traveler falls behind, proposes repair candidates for the rest of
the day. Candidates are computed from one snapshot, each on its own copy;
the input items are never mutated and nothing is applied here. Selection
is left to the caller.
"""
import datetime as dt
import logging
from typing import Optional

from itinerary_engine.config import settings, Settings
from itinerary_engine.domain.models import (
    AdjustmentCandidate,
    AdjustmentType,
    GeoPoint,
    ItemStatus,
    ItineraryItem,
    Place,
    ScheduleStatus,
)
from itinerary_engine.domain.time_utils import (
    format_clock,
    minutes_to_time,
    parse_clock,
    time_to_minutes,
)
from itinerary_engine.infrastructure.pacing import CancellationToken, call_with_fallback
from itinerary_engine.infrastructure.place_catalog import PlaceCatalogProvider, get_place_catalog_provider

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3


def _shift(item: ItineraryItem, minutes: int) -> None:
    start = time_to_minutes(item.start_time) + minutes
    item.start_time = minutes_to_time(start)
    item.end_time = minutes_to_time(start + item.duration_minutes)


def rank_candidates(candidates: list[AdjustmentCandidate]) -> list[AdjustmentCandidate]:
    """Most time saved first; generation order breaks ties."""
    return sorted(candidates, key=lambda c: -c.time_saved_minutes)


class AdjustmentGenerator:
    """Builds extend / skip / replace / reschedule / rest candidates."""

    def __init__(
        self,
        place_catalog: Optional[PlaceCatalogProvider] = None,
        app_settings: Optional[Settings] = None,
    ):
        """
        Initialize the adjustment generator.

        Args:
            place_catalog: Catalog used for replacement alternatives
            app_settings: Settings override (for testing)
        """
        self.place_catalog = place_catalog or get_place_catalog_provider()
        self._settings = app_settings or settings

    @staticmethod
    def _pending_after(items: list[ItineraryItem], index: int) -> list[int]:
        return [j for j in range(index + 1, len(items)) if items[j].status == ItemStatus.PENDING]

    @staticmethod
    def _copy(items: list[ItineraryItem]) -> list[ItineraryItem]:
        return [item.model_copy(deep=True) for item in items]

    @staticmethod
    def _renumber(items: list[ItineraryItem]) -> list[ItineraryItem]:
        for idx, item in enumerate(items, start=1):
            item.order = idx
        return items

    # -------------------------------------------------------------------------
    # Individual candidates
    # -------------------------------------------------------------------------

    def extend_current(self, items: list[ItineraryItem], index: int, delay: int) -> AdjustmentCandidate:
        """Stay longer at the current stop and push everything after it."""
        new_items = self._copy(items)
        current = new_items[index]
        current.duration_minutes += delay
        current.end_time = minutes_to_time(time_to_minutes(current.end_time) + delay)
        for j in self._pending_after(new_items, index):
            _shift(new_items[j], delay)

        return AdjustmentCandidate(
            type=AdjustmentType.EXTEND_CURRENT,
            items=new_items,
            description=f"Extend {current.name} by {delay} minutes",
            impact=f"All remaining activities will be delayed by {delay} minutes",
            time_saved_minutes=0,
        )

    def skip_next(self, items: list[ItineraryItem], next_index: int) -> AdjustmentCandidate:
        """Skip the next stop; it stays in the day as skipped."""
        new_items = self._copy(items)
        skipped = new_items[next_index]
        skipped.transition_to(ItemStatus.SKIPPED)
        skipped.notes = "Skipped due to schedule delay"

        return AdjustmentCandidate(
            type=AdjustmentType.SKIP_NEXT,
            items=new_items,
            description=f'Skip "{skipped.name}"',
            impact=f"Save {skipped.duration_minutes} minutes, continue with remaining activities",
            time_saved_minutes=skipped.duration_minutes,
        )

    def shorter_alternatives(self, original: ItineraryItem, places: list[Place], taken: set[str]) -> list[Place]:
        """
        Filter catalog places down to shorter, well-rated places of the same category.

        Sorted by duration ascending, then rating descending. At most three.
        """
        alternatives = [
            p for p in places
            if p.preferred_duration_minutes < original.duration_minutes
            and (p.rating or 0) >= self._settings.alternative_min_rating
            and p.category == original.category
            and p.place_id not in taken
        ]
        alternatives.sort(key=lambda p: (p.preferred_duration_minutes, -(p.rating or 0)))
        return alternatives[:MAX_ALTERNATIVES]

    async def replace_next(
        self,
        items: list[ItineraryItem],
        next_index: int,
        position: GeoPoint,
        token: Optional[CancellationToken] = None,
    ) -> Optional[AdjustmentCandidate]:
        """Swap the next stop for a shorter nearby alternative, if the catalog has one."""
        original = items[next_index]
        places = await call_with_fallback(
            lambda: self.place_catalog.search(
                position.lat,
                position.lng,
                self._settings.alternative_search_radius_meters,
                original.category,
            ),
            list,
            self._settings.catalog_timeout_seconds,
            token=token,
            label=f"alternatives for {original.name}",
        )
        taken = {item.place_id for item in items if item.place_id}
        alternatives = self.shorter_alternatives(original, places, taken)
        if not alternatives:
            logger.debug(f"No shorter alternative for {original.name}")
            return None

        best = alternatives[0]
        time_saved = original.duration_minutes - best.preferred_duration_minutes
        new_items = self._copy(items)
        replaced = new_items[next_index]
        replaced.transition_to(ItemStatus.CANCELED, reason=f"replaced by {best.name}")

        start = time_to_minutes(original.start_time)
        replacement = ItineraryItem.from_place(
            best,
            start_time=original.start_time,
            end_time=minutes_to_time(start + best.preferred_duration_minutes),
            travel_minutes_from_previous=original.travel_minutes_from_previous,
            replaced_from=original.name,
            notes=f"Replaced due to schedule delay (saves {time_saved} minutes)",
        )
        new_items.insert(next_index + 1, replacement)

        return AdjustmentCandidate(
            type=AdjustmentType.REPLACE_NEXT,
            items=self._renumber(new_items),
            description=f'Replace "{original.name}" with "{best.name}"',
            impact=f"Save {time_saved} minutes, shorter activity duration",
            time_saved_minutes=time_saved,
        )

    def reschedule_remaining(
        self,
        items: list[ItineraryItem],
        index: int,
        delay: int,
        now: dt.datetime,
    ) -> AdjustmentCandidate:
        """Re-linearize every remaining stop from now + delay with a fixed buffer."""
        new_items = self._copy(items)
        buffer = self._settings.reschedule_buffer_minutes
        day_end = time_to_minutes(parse_clock(self._settings.day_end_time))
        cursor = now.hour * 60 + now.minute + delay
        overrun: list[str] = []

        for j in self._pending_after(new_items, index):
            item = new_items[j]
            end = cursor + item.duration_minutes
            if end > day_end or (overrun and self._settings.cap_reschedule_at_day_end):
                if self._settings.cap_reschedule_at_day_end:
                    item.transition_to(ItemStatus.CANCELED, reason="does not fit before the end of the day")
                    overrun.append(item.name)
                    continue
                overrun.append(item.name)
            item.start_time = minutes_to_time(cursor)
            item.end_time = minutes_to_time(end)
            item.rescheduled = True
            cursor = end + buffer

        impact = "Realistic timing based on current progress"
        if overrun and self._settings.cap_reschedule_at_day_end:
            impact += f"; dropped {', '.join(overrun)} (past {self._settings.day_end_time})"
        elif overrun:
            impact += f"; runs past {self._settings.day_end_time} ({', '.join(overrun)})"

        return AdjustmentCandidate(
            type=AdjustmentType.RESCHEDULE_REMAINING,
            items=new_items,
            description="Reschedule all remaining activities from the current time",
            impact=impact,
            time_saved_minutes=delay,
        )

    def insert_rest(
        self,
        items: list[ItineraryItem],
        index: int,
        now: dt.datetime,
        rest_place: Optional[Place] = None,
    ) -> AdjustmentCandidate:
        """Insert a rest stop after the current item and push later stops back."""
        minutes = self._settings.rest_stop_minutes
        new_items = self._copy(items)
        now_minutes = now.hour * 60 + now.minute
        if new_items:
            start = max(now_minutes, time_to_minutes(new_items[index].end_time))
        else:
            start = now_minutes

        name = rest_place.name if rest_place else "Rest break"
        rest = ItineraryItem(
            place=rest_place,
            name=name,
            category=rest_place.category if rest_place else "rest",
            start_time=minutes_to_time(start),
            end_time=minutes_to_time(start + minutes),
            duration_minutes=minutes,
            is_rest_stop=True,
            notes="Recovery break suggested by fatigue level",
        )

        following = self._pending_after(new_items, index) if new_items else []
        push = 0
        if following:
            first = new_items[following[0]]
            push = max(0, start + minutes + first.travel_minutes_from_previous - time_to_minutes(first.start_time))
            for j in following:
                _shift(new_items[j], push)
        new_items.insert(index + 1 if new_items else 0, rest)

        return AdjustmentCandidate(
            type=AdjustmentType.INSERT_REST,
            items=self._renumber(new_items),
            description=f"Rest for {minutes} minutes at {name} from {format_clock(minutes_to_time(start))}",
            impact=f"Remaining activities move {push} minutes later" if push else "No change to later activities",
            time_saved_minutes=0,
        )

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def generate(
        self,
        items: list[ItineraryItem],
        status: ScheduleStatus,
        position: GeoPoint,
        now: dt.datetime,
        token: Optional[CancellationToken] = None,
    ) -> list[AdjustmentCandidate]:
        """
        Propose ranked repairs for the current delay.

        Args:
            items: The day's items (not mutated)
            status: Output of the schedule monitor for the same snapshot
            position: Traveler position, used for replacement search
            now: Snapshot clock time
            token: Optional cancellation token for catalog lookups

        Returns:
            Candidates ordered by time saved (empty when on time or nothing remains)
        """
        delay = status.delay_minutes
        if delay <= self._settings.behind_schedule_tolerance_minutes:
            return []

        index = status.current_activity_index
        remaining = self._pending_after(items, index)
        if not remaining:
            return []

        candidates = [self.extend_current(items, index, delay)]
        if len(remaining) >= 2:
            candidates.append(self.skip_next(items, remaining[0]))

        replacement = await self.replace_next(items, remaining[0], position, token=token)
        if replacement:
            candidates.append(replacement)

        if delay > self._settings.reschedule_threshold_minutes and len(remaining) >= 2:
            candidates.append(self.reschedule_remaining(items, index, delay, now))

        ranked = rank_candidates(candidates)
        logger.info(f"Generated {len(ranked)} adjustment candidates for a {delay} min delay")
        return ranked
