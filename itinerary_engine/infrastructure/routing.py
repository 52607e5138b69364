"""
Routing provider abstraction.
Returns travel duration and directions between two coordinates.
"""
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from itinerary_engine.config import settings
from itinerary_engine.domain.errors import ExternalServiceUnavailable
from itinerary_engine.domain.models import GeoPoint

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
_TAG_RE = re.compile(r"<[^>]+>")


def haversine_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in meters."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = math.radians(b.lat - a.lat)
    dlng = math.radians(b.lng - a.lng)

    h = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c * 1000


@dataclass
class RouteResult:
    """Result of a routing lookup."""
    duration_seconds: int
    instructions: str = ""
    distance_meters: Optional[int] = None
    mode: str = "transit"


class RoutingProvider(ABC):
    """
    Abstract base class for routing lookups.
    Allows swapping between heuristic and real Directions API implementations.
    """

    @abstractmethod
    async def route(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        mode: str = "transit",
    ) -> RouteResult:
        """
        Look up a route between two points.

        Args:
            origin: Starting point
            destination: Ending point
            mode: Travel mode ("transit", "driving", "walking")

        Returns:
            RouteResult with duration in seconds and directions

        Raises:
            ExternalServiceUnavailable: If no route could be obtained
        """
        pass


class HeuristicRoutingProvider(RoutingProvider):
    """
    Offline distance-based routing.
    Straight-line distance plus 30% detour at an average speed per mode.
    """

    SPEED_KMH = {
        "walking": 5.0,
        "transit": 20.0,
        "driving": 30.0,  # Urban driving
    }
    DETOUR_FACTOR = 1.3
    MIN_DURATION_SECONDS = 5 * 60

    async def route(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        mode: str = "transit",
    ) -> RouteResult:
        distance_km = haversine_meters(origin, destination) / 1000 * self.DETOUR_FACTOR
        speed = self.SPEED_KMH.get(mode, self.SPEED_KMH["transit"])
        seconds = max(self.MIN_DURATION_SECONDS, int(distance_km / speed * 3600))
        return RouteResult(
            duration_seconds=seconds,
            instructions=f"Approx. {distance_km:.1f} km by {mode}",
            distance_meters=int(distance_km * 1000),
            mode=mode,
        )


class GoogleDirectionsRoutingProvider(RoutingProvider):
    """
    Google Directions API routing provider.
    Transit requests that find no route are retried once in driving mode.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout_seconds: float = 10.0,
    ):
        """
        Initialize Google Directions routing provider.

        Args:
            api_key: Google Maps API key
            base_url: Directions API URL (defaults to settings)
            timeout_seconds: HTTP request timeout
        """
        if not api_key:
            raise ValueError("Google Maps API key is required")

        self.api_key = api_key
        self.base_url = base_url or settings.google_directions_base_url
        self.timeout_seconds = timeout_seconds

    async def _fetch(self, origin: GeoPoint, destination: GeoPoint, mode: str) -> dict:
        params = {
            "origin": f"{origin.lat},{origin.lng}",
            "destination": f"{destination.lat},{destination.lng}",
            "mode": mode,
            "key": self.api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(self.base_url, params=params)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            raise ExternalServiceUnavailable("directions", f"timeout after {self.timeout_seconds}s") from e
        except httpx.HTTPStatusError as e:
            raise ExternalServiceUnavailable("directions", f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ExternalServiceUnavailable("directions", str(e)) from e

    @staticmethod
    def _describe_step(step: dict) -> str:
        transit = step.get("transit_details")
        if step.get("travel_mode") == "TRANSIT" and transit:
            line = transit.get("line", {})
            vehicle = line.get("vehicle", {}).get("type", "TRANSIT")
            short_name = line.get("short_name") or line.get("name", "")
            departure = transit.get("departure_stop", {}).get("name", "?")
            arrival = transit.get("arrival_stop", {}).get("name", "?")
            return f"{vehicle} {short_name} from {departure} -> {arrival}"
        return _TAG_RE.sub("", step.get("html_instructions", ""))

    def _parse_leg(self, data: dict, mode: str) -> Optional[RouteResult]:
        if data.get("status") != "OK":
            logger.warning(f"Directions API status {data.get('status')} ({mode})")
            return None
        routes = data.get("routes") or []
        legs = routes[0].get("legs") if routes else None
        if not legs:
            logger.warning("Directions API returned no legs")
            return None

        leg = legs[0]
        seconds = leg.get("duration", {}).get("value")
        if not isinstance(seconds, (int, float)) or not math.isfinite(seconds) or seconds < 0:
            logger.warning(f"Directions API returned invalid duration {seconds!r}")
            return None

        steps = [self._describe_step(s) for s in leg.get("steps", [])]
        if mode == "driving":
            text = leg.get("duration", {}).get("text", f"{round(seconds / 60)} mins")
            suffix = "..." if len(steps) > 2 else ""
            instructions = f"Drive {text} via {' -> '.join(steps[:2])}{suffix}"
        else:
            instructions = " -> ".join(steps)

        return RouteResult(
            duration_seconds=int(seconds),
            instructions=instructions,
            distance_meters=leg.get("distance", {}).get("value"),
            mode=mode,
        )

    async def route(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        mode: str = "transit",
    ) -> RouteResult:
        data = await self._fetch(origin, destination, mode)
        result = self._parse_leg(data, mode)

        if result is None and mode == "transit":
            logger.debug("Transit route not found, retrying in driving mode")
            data = await self._fetch(origin, destination, "driving")
            result = self._parse_leg(data, "driving")

        if result is None:
            raise ExternalServiceUnavailable("directions", f"no route ({data.get('status')})")

        logger.debug(f"Directions: {result.duration_seconds}s ({result.mode})")
        return result


def get_routing_provider() -> RoutingProvider:
    """
    Factory function to get routing provider based on settings.

    Returns:
        RoutingProvider instance
    """
    provider_type = settings.routing_provider.lower()

    if provider_type == "google_maps":
        if settings.google_maps_api_key:
            logger.info("Using Google Directions routing provider")
            return GoogleDirectionsRoutingProvider(
                api_key=settings.google_maps_api_key,
                timeout_seconds=settings.routing_timeout_seconds,
            )
        else:
            logger.warning(
                "GOOGLE_MAPS_API_KEY not set, falling back to heuristic routing. "
                "Set ROUTING_PROVIDER=heuristic to suppress this warning."
            )
            return HeuristicRoutingProvider()

    logger.info("Using heuristic routing provider")
    return HeuristicRoutingProvider()
