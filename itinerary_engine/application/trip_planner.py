"""
Trip planner.
Drafts anchors across the trip's days and runs the per-day pipeline:
travel graph -> route optimizer -> timeline constructor.

A place is used on at most one day. Each day also receives a pool of
unused, well-scored alternates for fast replacement later.
"""
import datetime as dt
import logging
from typing import Optional

from itinerary_engine.application.route_optimizer import RouteOptimizer
from itinerary_engine.application.timeline import TimelineConstructor
from itinerary_engine.application.travel_graph import TravelGraphBuilder
from itinerary_engine.config import settings, Settings
from itinerary_engine.domain.models import DayPlan, GeoPoint, Place, TripPlan
from itinerary_engine.domain.time_utils import resolve_start_time
from itinerary_engine.infrastructure.pacing import CancellationToken
from itinerary_engine.infrastructure.routing import RoutingProvider

logger = logging.getLogger(__name__)


def trip_days(start_date: dt.date, end_date: dt.date) -> list[dt.date]:
    """Every date from start to end, inclusive."""
    if end_date < start_date:
        raise ValueError(f"end_date {end_date} is before start_date {start_date}")
    return [start_date + dt.timedelta(days=i) for i in range((end_date - start_date).days + 1)]


def draft_anchors(
    days: list[dt.date],
    places: list[Place],
    must_see_ids: set[str],
) -> dict[dt.date, list[str]]:
    """
    One anchor place per day.

    Must-see places are handed out round-robin first (best-scored first),
    then the best-scored remaining places fill the days still empty.
    """
    by_score = sorted(places, key=lambda p: p.score, reverse=True)
    anchors: dict[dt.date, list[str]] = {day: [] for day in days}
    used: set[str] = set()

    must_see = [p for p in by_score if p.place_id in must_see_ids]
    for day, place in zip(days, must_see):
        anchors[day].append(place.place_id)
        used.add(place.place_id)

    remaining = iter([p for p in by_score if p.place_id not in used and p.place_id not in must_see_ids])
    for day in days:
        if anchors[day]:
            continue
        place = next(remaining, None)
        if place is None:
            break
        anchors[day].append(place.place_id)
        used.add(place.place_id)

    return anchors


class TripPlanner:
    """Multi-day orchestration of the per-day planning pipeline."""

    def __init__(
        self,
        routing_provider: Optional[RoutingProvider] = None,
        app_settings: Optional[Settings] = None,
    ):
        """
        Initialize the trip planner.

        Args:
            routing_provider: Routing provider for travel graphs
            app_settings: Settings override (for testing)
        """
        self._settings = app_settings or settings
        self.graph_builder = TravelGraphBuilder(routing_provider, app_settings=self._settings)
        self.route_optimizer = RouteOptimizer()
        self.timeline = TimelineConstructor(app_settings=self._settings)

    async def plan_day(
        self,
        origin: GeoPoint,
        day_date: dt.date,
        candidates: list[Place],
        start_time: Optional[dt.time] = None,
        token: Optional[CancellationToken] = None,
    ) -> DayPlan:
        """Run graph -> route -> timeline for one day."""
        if not candidates:
            return DayPlan(date=day_date)
        graph = await self.graph_builder.build(origin, candidates, token=token)
        route = self.route_optimizer.optimize(graph, start_time)
        return self.timeline.build(route, day_date)

    async def plan_trip(
        self,
        origin: GeoPoint,
        start_date: dt.date,
        end_date: dt.date,
        places: list[Place],
        must_see_ids: Optional[set[str]] = None,
        start_time: Optional[str] = None,
        avoid: Optional[list[str]] = None,
        token: Optional[CancellationToken] = None,
    ) -> TripPlan:
        """
        Plan every day of the trip.

        Args:
            origin: Homebase each day starts from
            start_date: First day
            end_date: Last day (inclusive)
            places: Candidate places (any order)
            must_see_ids: Places to anchor first
            start_time: Day-start anchor "HH:MM" (invalid values fall back to 09:00)
            avoid: Place ids or names to leave out
            token: Optional cancellation token for routing lookups

        Returns:
            TripPlan with one DayPlan per date

        Raises:
            ValueError: If end_date is before start_date
        """
        days = trip_days(start_date, end_date)
        day_start = resolve_start_time(start_time, self._settings.day_start_time)
        candidates = self._filter_avoided(places, avoid or [])
        by_id = {p.place_id: p for p in candidates}
        by_score = sorted(by_id.values(), key=lambda p: p.score, reverse=True)

        anchors = draft_anchors(days, by_score, must_see_ids or set())
        used: set[str] = {pid for ids in anchors.values() for pid in ids}
        plan = TripPlan(start_date=start_date, end_date=end_date, origin=origin)

        for day_date in days:
            day_anchor_ids = anchors[day_date]
            picks = [by_id[pid] for pid in day_anchor_ids]
            for place in by_score:
                if len(picks) >= self._settings.max_stops_per_day:
                    break
                if place.place_id not in used:
                    picks.append(place)
                    used.add(place.place_id)

            try:
                day = await self.plan_day(origin, day_date, picks, day_start, token=token)
            except Exception as e:
                logger.error(f"Planning failed for {day_date}: {e}")
                day = DayPlan(date=day_date, notices=[f"Day could not be planned: {e}"])

            # Dropped stops free their place for the pool but not for other days
            day.anchor_place_ids = list(day_anchor_ids)
            day.pool = [p for p in by_score if p.place_id not in used][: self._settings.pool_size]
            plan.days.append(day)
            logger.info(f"Planned {day_date}: {len(day.items)} items, pool {len(day.pool)}")

        duplicates = plan.duplicate_place_ids()
        if duplicates:
            logger.warning(f"Places scheduled on more than one day: {duplicates}")
        return plan

    @staticmethod
    def _filter_avoided(places: list[Place], avoid: list[str]) -> list[Place]:
        if not avoid:
            return list(places)
        needles = [a.lower() for a in avoid]
        kept = []
        for place in places:
            name = place.name.lower()
            if place.place_id in avoid or any(n in name for n in needles):
                logger.debug(f"Avoiding {place.name}")
                continue
            kept.append(place)
        return kept
