"""
Travel graph builder.

Builds a complete directed graph of travel times between the day's origin
and its candidate places. Every ordered pair of distinct nodes gets an
edge; lookups that fail for any reason get the fallback edge instead, so
the graph is always complete and every duration finite.
"""
import logging
import math
from typing import Optional

from itinerary_engine.config import settings, Settings
from itinerary_engine.domain.errors import ExternalServiceUnavailable
from itinerary_engine.domain.models import GeoPoint, Place, TravelEdge
from itinerary_engine.infrastructure.pacing import CancellationToken, call_with_fallback, gather_paced
from itinerary_engine.infrastructure.routing import RoutingProvider, get_routing_provider

logger = logging.getLogger(__name__)

ORIGIN_ID = "origin"
FALLBACK_INSTRUCTIONS = "estimated"


class TravelGraph:
    """Directed travel-time graph keyed by node id."""

    def __init__(
        self,
        origin: GeoPoint,
        places: list[Place],
        edges: list[TravelEdge],
        fallback_seconds: Optional[int] = None,
    ):
        self.origin = origin
        self.places = places
        self.fallback_seconds = fallback_seconds if fallback_seconds is not None else settings.fallback_travel_seconds
        self._edges = {(e.from_id, e.to_id): e for e in edges}

    @property
    def node_ids(self) -> list[str]:
        return [ORIGIN_ID] + [p.place_id for p in self.places]

    def edges(self) -> list[TravelEdge]:
        return list(self._edges.values())

    def edge(self, from_id: str, to_id: str) -> Optional[TravelEdge]:
        return self._edges.get((from_id, to_id))

    def duration_seconds(self, from_id: str, to_id: str) -> int:
        e = self.edge(from_id, to_id)
        return e.duration_seconds if e else self.fallback_seconds

    def fallback_count(self) -> int:
        return sum(1 for e in self._edges.values() if e.is_fallback)


class TravelGraphBuilder:
    """
    Queries the routing provider for every ordered pair of nodes.

    Lookups run in paced batches, each with its own timeout. Construction
    never raises.
    """

    def __init__(
        self,
        routing_provider: Optional[RoutingProvider] = None,
        app_settings: Optional[Settings] = None,
    ):
        """
        Initialize the graph builder.

        Args:
            routing_provider: Routing provider (defaults to settings-based provider)
            app_settings: Settings override (for testing)
        """
        self.routing_provider = routing_provider or get_routing_provider()
        self._settings = app_settings or settings

    def _fallback_edge(self, from_id: str, to_id: str) -> TravelEdge:
        return TravelEdge(
            from_id=from_id,
            to_id=to_id,
            duration_seconds=self._settings.fallback_travel_seconds,
            instructions=FALLBACK_INSTRUCTIONS,
            is_fallback=True,
        )

    async def _lookup(
        self,
        from_id: str,
        from_point: Optional[GeoPoint],
        to_id: str,
        to_point: Optional[GeoPoint],
        mode: str,
    ) -> TravelEdge:
        if from_point is None or to_point is None:
            raise ExternalServiceUnavailable("routing", f"missing coordinates for {from_id}->{to_id}")

        result = await self.routing_provider.route(from_point, to_point, mode)
        seconds = result.duration_seconds
        if seconds is None or not math.isfinite(seconds) or seconds < 0:
            raise ExternalServiceUnavailable("routing", f"invalid duration {seconds!r}")

        logger.debug(f"Edge {from_id}->{to_id}: {seconds}s")
        return TravelEdge(
            from_id=from_id,
            to_id=to_id,
            duration_seconds=int(seconds),
            instructions=result.instructions,
        )

    async def build(
        self,
        origin: GeoPoint,
        places: list[Place],
        mode: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> TravelGraph:
        """
        Build the travel graph for a day.

        Args:
            origin: Start point of the day
            places: Candidate places (truncated to max_graph_places)
            mode: Travel mode (defaults to settings.routing_mode)
            token: Optional cancellation token; cancelled lookups use the fallback edge

        Returns:
            TravelGraph with N*(N+1) edges for N places
        """
        mode = mode or self._settings.routing_mode

        unique: list[Place] = []
        seen: set[str] = set()
        for place in places:
            if place.place_id in seen:
                logger.warning(f"Duplicate place {place.place_id} ignored in travel graph")
                continue
            seen.add(place.place_id)
            unique.append(place)

        limit = self._settings.max_graph_places
        if len(unique) > limit:
            logger.warning(f"Travel graph limited to {limit} places ({len(unique)} given)")
            unique = unique[:limit]

        nodes: list[tuple[str, Optional[GeoPoint]]] = [(ORIGIN_ID, origin)]
        nodes += [(p.place_id, p.location()) for p in unique]

        factories = []
        for from_id, from_point in nodes:
            for to_id, to_point in nodes:
                if from_id == to_id:
                    continue
                factories.append(
                    lambda f=from_id, fp=from_point, t=to_id, tp=to_point: call_with_fallback(
                        lambda: self._lookup(f, fp, t, tp, mode),
                        lambda: self._fallback_edge(f, t),
                        self._settings.routing_timeout_seconds,
                        token=token,
                        label=f"route {f}->{t}",
                    )
                )

        edges = await gather_paced(
            factories,
            self._settings.routing_batch_size,
            self._settings.routing_batch_delay_seconds,
            token=token,
        )

        graph = TravelGraph(origin, unique, edges, fallback_seconds=self._settings.fallback_travel_seconds)
        fallbacks = graph.fallback_count()
        if fallbacks:
            logger.warning(f"Travel graph: {fallbacks}/{len(edges)} edges use the fallback estimate")
        logger.info(f"Built travel graph: {len(unique)} places, {len(edges)} edges")
        return graph
