"""
Route optimizer.
Sequences a day's places with a greedy nearest-neighbour walk over the
travel graph. Purely deterministic - no provider calls.

The walk is an approximation of the shortest tour. It is O(N^2) and its
quality degrades noticeably above ~10 places, which is why the graph
builder caps the number of places per day.
"""
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Optional

from itinerary_engine.application.travel_graph import ORIGIN_ID, TravelGraph
from itinerary_engine.domain.models import Place, TravelEdge
from itinerary_engine.domain.time_utils import minutes_to_time, resolve_start_time, time_to_minutes

logger = logging.getLogger(__name__)


@dataclass
class ProvisionalStop:
    """A sequenced place with a provisional running clock."""
    place: Place
    travel_minutes: int
    travel_instructions: str
    arrival_minutes: int
    departure_minutes: int
    travel_is_estimate: bool = False

    @property
    def arrival(self) -> dt.time:
        return minutes_to_time(self.arrival_minutes)

    @property
    def departure(self) -> dt.time:
        return minutes_to_time(self.departure_minutes)


@dataclass
class OptimizedRoute:
    """Visit order plus the provisional clock."""
    day_start: dt.time
    stops: list[ProvisionalStop] = field(default_factory=list)

    @property
    def order(self) -> list[str]:
        return [s.place.place_id for s in self.stops]

    @property
    def total_travel_minutes(self) -> int:
        return sum(s.travel_minutes for s in self.stops)


class RouteOptimizer:
    """Greedy nearest-neighbour sequencer."""

    def sequence(self, graph: TravelGraph) -> list[Place]:
        """
        Order the graph's places by repeatedly visiting the nearest unvisited one.

        Ties keep the first place in input order.
        """
        remaining = list(graph.places)
        ordered: list[Place] = []
        current = ORIGIN_ID

        while remaining:
            best_index = 0
            best_seconds = graph.duration_seconds(current, remaining[0].place_id)
            for idx in range(1, len(remaining)):
                seconds = graph.duration_seconds(current, remaining[idx].place_id)
                if seconds < best_seconds:
                    best_index, best_seconds = idx, seconds
            chosen = remaining.pop(best_index)
            ordered.append(chosen)
            current = chosen.place_id

        return ordered

    def optimize(self, graph: TravelGraph, day_start: Optional[dt.time] = None) -> OptimizedRoute:
        """
        Sequence the places and run the provisional clock from day_start.

        Args:
            graph: Complete travel graph
            day_start: Day-start anchor (defaults to 09:00)

        Returns:
            OptimizedRoute with one stop per place
        """
        start = day_start or resolve_start_time(None)
        route = OptimizedRoute(day_start=start)
        clock = time_to_minutes(start)
        previous = ORIGIN_ID

        for place in self.sequence(graph):
            edge: Optional[TravelEdge] = graph.edge(previous, place.place_id)
            seconds = edge.duration_seconds if edge else graph.duration_seconds(previous, place.place_id)
            travel = round(seconds / 60)
            clock += travel
            arrival = clock
            clock += place.preferred_duration_minutes
            route.stops.append(ProvisionalStop(
                place=place,
                travel_minutes=travel,
                travel_instructions=edge.instructions if edge else "",
                arrival_minutes=arrival,
                departure_minutes=clock,
                travel_is_estimate=edge.is_fallback if edge else True,
            ))
            previous = place.place_id

        logger.info(f"Optimized route: {len(route.stops)} stops, {route.total_travel_minutes} min travel")
        return route
