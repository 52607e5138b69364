"""
Replanning coordinator.

The single writer of stored trips. Every mutating operation follows the
same shape:

    load -> compute on a copy -> validate -> persist -> return

so a failed computation never leaves a half-applied plan behind.
"""
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from itinerary_engine.application.adjustments import AdjustmentGenerator
from itinerary_engine.application.fatigue import FatigueTracker
from itinerary_engine.application.redistributor import MultiDayRedistributor, RedistributionResult
from itinerary_engine.application.schedule_monitor import ScheduleMonitor
from itinerary_engine.application.timeline import TimelineConstructor
from itinerary_engine.application.trip_planner import TripPlanner
from itinerary_engine.application.weather_guard import WeatherAssessment, WeatherGuard
from itinerary_engine.config import settings, Settings
from itinerary_engine.domain.errors import ProfileNotSet, TripNotFound
from itinerary_engine.domain.models import (
    ActivityLevel,
    AdjustmentCandidate,
    BiometricProfile,
    DayPlan,
    FatigueState,
    FatigueThresholdCrossed,
    GeoPoint,
    ItemStatus,
    Place,
    PositionSample,
    RecoveryResult,
    ScheduleStatus,
    TripPlan,
    VenueType,
)
from itinerary_engine.infrastructure.document_store import (
    DocumentStore,
    ProfileStore,
    TripPlanRepository,
    get_document_store,
)
from itinerary_engine.infrastructure.place_catalog import PlaceCatalogProvider, get_place_catalog_provider
from itinerary_engine.infrastructure.routing import RoutingProvider
from itinerary_engine.infrastructure.weather import WeatherProvider

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    day: DayPlan
    status: ScheduleStatus
    candidates: list[AdjustmentCandidate] = field(default_factory=list)


@dataclass
class HeartRateResult:
    state: FatigueState
    event: Optional[FatigueThresholdCrossed] = None
    candidates: list[AdjustmentCandidate] = field(default_factory=list)
    rest_spots: list[Place] = field(default_factory=list)


class ReplanningCoordinator:
    """Applies live updates to stored trips."""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        routing_provider: Optional[RoutingProvider] = None,
        place_catalog: Optional[PlaceCatalogProvider] = None,
        weather_provider: Optional[WeatherProvider] = None,
        app_settings: Optional[Settings] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            store: Document store (defaults to settings-based store)
            routing_provider: Routing provider for trip planning
            place_catalog: Catalog for replacements and rest spots
            weather_provider: Weather provider for the weather guard
            app_settings: Settings override (for testing)
        """
        self._settings = app_settings or settings
        store = store or get_document_store()
        self.trips = TripPlanRepository(store)
        self.profiles = ProfileStore(store)
        self.place_catalog = place_catalog or get_place_catalog_provider()

        self.planner = TripPlanner(routing_provider, app_settings=self._settings)
        self.timeline = TimelineConstructor(app_settings=self._settings)
        self.monitor = ScheduleMonitor(app_settings=self._settings)
        self.adjustments = AdjustmentGenerator(self.place_catalog, app_settings=self._settings)
        self.redistributor = MultiDayRedistributor(app_settings=self._settings)
        self.weather_guard = WeatherGuard(weather_provider)

    @property
    def settings(self) -> Settings:
        return self._settings

    # -------------------------------------------------------------------------
    # Load / validate / persist
    # -------------------------------------------------------------------------

    async def get_trip(self, trip_id: UUID) -> TripPlan:
        plan = await self.trips.load_trip(trip_id)
        if plan is None:
            raise TripNotFound(trip_id)
        return plan

    @staticmethod
    def _day_index(plan: TripPlan, day_index: int) -> int:
        if not 0 <= day_index < len(plan.days):
            raise ValueError(f"Day {day_index} not in trip ({len(plan.days)} days)")
        return day_index

    async def _commit(self, plan: TripPlan) -> None:
        duplicates = plan.duplicate_place_ids()
        if duplicates:
            raise ValueError(f"Places would be scheduled on more than one day: {duplicates}")
        await self.trips.save_trip(plan)

    async def _tracker(self, activity_level: Optional[ActivityLevel] = None) -> FatigueTracker:
        profile = await self.profiles.get()
        if profile is None:
            raise ProfileNotSet()
        return FatigueTracker(
            profile,
            activity_level=activity_level,
            place_catalog=self.place_catalog,
            app_settings=self._settings,
        )

    async def _fatigue_state(self, trip_id: UUID, tracker: FatigueTracker, at: dt.datetime) -> FatigueState:
        state = await self.trips.load_fatigue(trip_id)
        # The energy budget is daily
        if state is None or (state.updated_at is not None and state.updated_at.date() != at.date()):
            return tracker.initial_state(at)
        return state

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create_trip(
        self,
        origin: GeoPoint,
        start_date: dt.date,
        end_date: dt.date,
        places: list[Place],
        must_see_ids: Optional[set[str]] = None,
        start_time: Optional[str] = None,
        avoid: Optional[list[str]] = None,
    ) -> TripPlan:
        plan = await self.planner.plan_trip(
            origin, start_date, end_date, places,
            must_see_ids=must_see_ids, start_time=start_time, avoid=avoid,
        )
        await self._commit(plan)
        logger.info(f"Created trip {plan.trip_id} with {len(plan.days)} days")
        return plan

    async def tick(
        self,
        trip_id: UUID,
        day_index: int,
        position: PositionSample,
        now: Optional[dt.datetime] = None,
    ) -> TickResult:
        """
        Process one position/clock sample.

        Advances item states, recomputes the schedule status and proposes
        repairs when behind. Only the state changes are persisted; candidates
        are returned for the caller to choose from.
        """
        now = now or position.timestamp
        plan = await self.get_trip(trip_id)
        self._day_index(plan, day_index)

        day = self.monitor.advance_item_states(plan.days[day_index], position)
        index = self.monitor.current_index(day, position)
        status = self.monitor.compute_status(day.items, index, now)
        candidates = await self.adjustments.generate(day.items, status, position.point(), now)

        if [i.status for i in day.items] != [i.status for i in plan.days[day_index].items]:
            new_plan = plan.model_copy(deep=True)
            new_plan.days[day_index] = day
            await self._commit(new_plan)

        return TickResult(day=day, status=status, candidates=candidates)

    async def apply_adjustment(
        self,
        trip_id: UUID,
        day_index: int,
        candidate: AdjustmentCandidate,
    ) -> DayPlan:
        """
        Swap a chosen candidate's items into the day and re-time it.

        Raises:
            TripNotFound: If the trip does not exist
            ValueError: If the candidate is stale (items missing, or a
                finished item's status differs from the stored one)
        """
        plan = await self.get_trip(trip_id)
        self._day_index(plan, day_index)
        current = plan.days[day_index]

        proposed = {item.item_id: item for item in candidate.items}
        for item in current.items:
            match = proposed.get(item.item_id)
            if match is None:
                raise ValueError(f"Adjustment is stale: item {item.name} is missing")
            if not item.is_open and match.status != item.status:
                raise ValueError(f"Adjustment is stale: {item.name} is already {item.status.value}")

        new_plan = plan.model_copy(deep=True)
        candidate_day = new_plan.days[day_index].model_copy(
            update={"items": [item.model_copy(deep=True) for item in candidate.items]}
        )
        retimed = self.timeline.retime(candidate_day)
        new_plan.days[day_index] = retimed
        await self._commit(new_plan)
        logger.info(f"Applied {candidate.type.value} to trip {trip_id} day {day_index}")
        return retimed

    async def abandon_day(
        self,
        trip_id: UUID,
        day_index: int,
        from_index: int = 0,
        reason: str = "day abandoned",
        now: Optional[dt.datetime] = None,
    ) -> RedistributionResult:
        plan = await self.get_trip(trip_id)
        self._day_index(plan, day_index)
        result = self.redistributor.abandon_day(plan, day_index, from_index, reason=reason, now=now)
        await self._commit(result.plan)
        return result

    async def check_weather(self, trip_id: UUID, day_index: int, position: GeoPoint) -> WeatherAssessment:
        """Assess the day's pending outdoor stops. Read-only; abandoning is the caller's call."""
        plan = await self.get_trip(trip_id)
        self._day_index(plan, day_index)
        return await self.weather_guard.check(position, plan.days[day_index].items)

    async def record_heart_rate(
        self,
        trip_id: UUID,
        day_index: int,
        heart_rate: Optional[float],
        minutes: float,
        at: dt.datetime,
        position: Optional[GeoPoint] = None,
        activity_level: Optional[ActivityLevel] = None,
    ) -> HeartRateResult:
        """
        Add a heart-rate sample (or the walking estimate when None) to the
        day's fatigue state.

        On a threshold crossing the result carries repair candidates: a rest
        stop at the best nearby rest spot first, then the usual schedule
        repairs for the current delay.
        """
        plan = await self.get_trip(trip_id)
        self._day_index(plan, day_index)
        tracker = await self._tracker(activity_level)
        state = await self._fatigue_state(trip_id, tracker, at)

        if heart_rate is None:
            new_state, event = tracker.estimate_without_heart_rate(state, minutes, at)
        else:
            new_state, event = tracker.record_heart_rate(state, heart_rate, minutes, at)
        await self.trips.save_fatigue(trip_id, new_state)

        result = HeartRateResult(state=new_state, event=event)
        if event is None:
            return result

        where = position or plan.origin
        day = plan.days[day_index]
        index = self.monitor.current_index(day)
        result.rest_spots = await tracker.find_rest_spots(where)
        rest_place = result.rest_spots[0] if result.rest_spots else None
        result.candidates.append(self.adjustments.insert_rest(day.items, index, at, rest_place))

        status = self.monitor.compute_status(day.items, index, at)
        result.candidates.extend(await self.adjustments.generate(day.items, status, where, at))
        return result

    async def rest(
        self,
        trip_id: UUID,
        minutes: float,
        venue: VenueType,
        at: dt.datetime,
        activity_before: ActivityLevel = ActivityLevel.MODERATE,
    ) -> tuple[FatigueState, RecoveryResult]:
        await self.get_trip(trip_id)
        tracker = await self._tracker()
        state = await self._fatigue_state(trip_id, tracker, at)
        new_state, recovery = tracker.rest(state, minutes, venue, at, activity_before)
        await self.trips.save_fatigue(trip_id, new_state)
        return new_state, recovery

    async def fatigue(self, trip_id: UUID) -> Optional[FatigueState]:
        await self.get_trip(trip_id)
        return await self.trips.load_fatigue(trip_id)

    async def item_statuses(self, trip_id: UUID, day_index: int) -> dict[str, ItemStatus]:
        plan = await self.get_trip(trip_id)
        self._day_index(plan, day_index)
        return await self.trips.load_item_statuses(trip_id, day_index)

    async def set_profile(self, profile: BiometricProfile) -> BiometricProfile:
        await self.profiles.set(profile)
        return profile

    async def get_profile(self) -> Optional[BiometricProfile]:
        return await self.profiles.get()
