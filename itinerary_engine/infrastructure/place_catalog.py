"""
Place catalog abstraction and implementations.
Finds venues around a coordinate, optionally narrowed to one category.
"""
import datetime as dt
import logging
import math
import re
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from itinerary_engine.config import settings
from itinerary_engine.domain.errors import ExternalServiceUnavailable
from itinerary_engine.domain.models import GeoPoint, OpeningWindow, Place
from itinerary_engine.infrastructure.pacing import call_with_fallback, gather_paced
from itinerary_engine.infrastructure.routing import haversine_meters

logger = logging.getLogger(__name__)


# Typical visit length per normalized category, in minutes
DEFAULT_TYPE_DURATION = {
    "museum": 120,
    "art_gallery": 90,
    "religious_sites": 75,
    "landmark": 90,
    "tourist_attraction": 90,
    "park": 120,
    "beach": 150,
    "aquarium": 120,
    "zoo": 150,
    "amusement_park": 210,
    "sports": 90,
    "market": 75,
    "cafe": 45,
    "spa": 60,
}
DEFAULT_VISIT_MINUTES = 90

INDOOR_TYPES = {
    "museum", "art_gallery", "library", "shopping_mall", "movie_theater",
    "restaurant", "cafe", "night_club", "spa", "gym", "bowling_alley", "book_store",
}
OUTDOOR_TYPES = {
    "park", "tourist_attraction", "zoo", "stadium", "amusement_park",
    "campground", "rv_park", "natural_feature", "aquarium", "cemetery",
}

# Category hint -> Google Places `type` parameter
CATEGORY_TO_GOOGLE_TYPE = {
    "museum": "museum",
    "art_gallery": "art_gallery",
    "religious_sites": "place_of_worship",
    "aquarium": "aquarium",
    "zoo": "zoo",
    "amusement_park": "amusement_park",
    "sports": "stadium",
    "park": "park",
    "cafe": "cafe",
    "spa": "spa",
    "hotel": "lodging",
    "landmark": "tourist_attraction",
    "tourist_attraction": "tourist_attraction",
}

_LANDMARK_NAME_RE = re.compile(r"palace|fort|citadel|tower|castle|monument|cathedral", re.IGNORECASE)
_MARKET_NAME_RE = re.compile(r"souk|bazaar|market", re.IGNORECASE)

DETAILS_BATCH_SIZE = 5


def normalize_category(types: list[str], name: str) -> str:
    """Map Google place types (and the name) onto the engine's category tags."""
    t = set(types)
    for google_type, category in (
        ("museum", "museum"),
        ("art_gallery", "art_gallery"),
        ("place_of_worship", "religious_sites"),
        ("aquarium", "aquarium"),
        ("zoo", "zoo"),
        ("amusement_park", "amusement_park"),
        ("stadium", "sports"),
        ("park", "park"),
        ("beach", "beach"),
        ("cafe", "cafe"),
        ("spa", "spa"),
    ):
        if google_type in t:
            return category
    if "market" in t or _MARKET_NAME_RE.search(name):
        return "market"
    if _LANDMARK_NAME_RE.search(name):
        return "landmark"
    if "tourist_attraction" in t or "point_of_interest" in t:
        return "tourist_attraction"
    return "attraction"


def bayesian_rating(rating: Optional[float], votes: Optional[int], prior: float = 4.2, weight: int = 200) -> float:
    """Rating shrunk towards a prior for places with few votes (0..5)."""
    v = max(0, votes or 0)
    r = max(0.0, min(5.0, rating or 0.0))
    return (v / (v + weight)) * r + (weight / (v + weight)) * prior


def score_place(rating: Optional[float], votes: Optional[int], distance_km: Optional[float]) -> float:
    """Ranking score: Bayesian rating x vote volume x proximity boost."""
    proximity = 1.0 if distance_km is None else 1 / (1 + 0.03 * max(0.0, distance_km))
    return bayesian_rating(rating, votes) * math.log1p(max(0, votes or 0)) * proximity


def _hhmm(value: str) -> Optional[dt.time]:
    if not value or len(value) < 3:
        return None
    try:
        return dt.time(int(value[:-2]), int(value[-2:]))
    except ValueError:
        return None


def parse_opening_periods(periods: list[dict], on_date: dt.date) -> list[OpeningWindow]:
    """
    Opening windows for one date from Google `opening_hours.periods`.

    Google counts days from Sunday=0. A period without a close is open late.
    """
    google_day = (on_date.weekday() + 1) % 7
    windows = []
    for period in periods:
        opening = period.get("open") or {}
        if opening.get("day") != google_day:
            continue
        closing = period.get("close") or {}
        closes_at = _hhmm(closing.get("time", ""))
        # Closing on a later day means open past midnight
        if closing and closing.get("day") != google_day:
            closes_at = None
        windows.append(OpeningWindow(opens_at=_hhmm(opening.get("time", "")), closes_at=closes_at))
    return windows


class PlaceCatalogProvider(ABC):
    """Abstract base class for place catalogs."""

    @abstractmethod
    async def search(
        self,
        lat: float,
        lng: float,
        radius_m: int,
        category_hint: Optional[str] = None,
    ) -> list[Place]:
        """
        Search for places around a point.

        Args:
            lat: Latitude of the search center
            lng: Longitude of the search center
            radius_m: Search radius in meters
            category_hint: Optional normalized category to narrow the search

        Returns:
            List of Place objects, best-scored first

        Raises:
            ExternalServiceUnavailable: If the catalog cannot be reached
        """
        pass


class StaticPlaceCatalogProvider(PlaceCatalogProvider):
    """
    In-memory catalog over a fixed list of places.
    Used offline and in tests.
    """

    def __init__(self, places: Optional[list[Place]] = None):
        self.places = list(places or [])

    def add(self, place: Place) -> None:
        self.places.append(place)

    async def search(
        self,
        lat: float,
        lng: float,
        radius_m: int,
        category_hint: Optional[str] = None,
    ) -> list[Place]:
        center = GeoPoint(lat=lat, lng=lng)
        matches = []
        for place in self.places:
            if category_hint and place.category != category_hint:
                continue
            if place.has_coordinates() and haversine_meters(center, place.location()) > radius_m:
                continue
            matches.append(place)
        return sorted(matches, key=lambda p: p.score, reverse=True)


class GooglePlacesCatalogProvider(PlaceCatalogProvider):
    """
    Place catalog backed by Google Places Nearby Search.
    Opening hours are fetched from Place Details in small paced batches.
    """

    DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        fetch_opening_hours: bool = True,
        on_date: Optional[dt.date] = None,
    ):
        """
        Initialize Google Places catalog.

        Args:
            api_key: Google Maps API key (defaults to settings)
            base_url: Nearby Search URL (defaults to settings)
            timeout_seconds: HTTP timeout in seconds
            fetch_opening_hours: Also request Place Details for opening hours
            on_date: Date whose opening windows are returned (defaults to today)
        """
        self.api_key = api_key or settings.google_maps_api_key
        if not self.api_key:
            raise ValueError("Google Maps API key is required")
        self.base_url = base_url or settings.google_places_nearby_url
        self.timeout_seconds = timeout_seconds or settings.google_places_timeout_seconds
        self.fetch_opening_hours = fetch_opening_hours
        self.on_date = on_date

    async def _get_json(self, url: str, params: dict) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            raise ExternalServiceUnavailable("places", f"timeout after {self.timeout_seconds}s") from e
        except httpx.HTTPStatusError as e:
            raise ExternalServiceUnavailable("places", f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ExternalServiceUnavailable("places", str(e)) from e

    def _parse_place(self, raw: dict, center: GeoPoint, windows: list[OpeningWindow]) -> Optional[Place]:
        """Parse a single Nearby Search result."""
        try:
            location = raw["geometry"]["location"]
            lat, lng = float(location["lat"]), float(location["lng"])
            name = raw["name"]
            place_id = raw["place_id"]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse place result: {e}")
            return None

        types = raw.get("types", [])
        category = normalize_category(types, name)
        distance_km = haversine_meters(center, GeoPoint(lat=lat, lng=lng)) / 1000
        indoor: Optional[bool] = None
        if any(t in INDOOR_TYPES for t in types):
            indoor = True
        elif any(t in OUTDOOR_TYPES for t in types):
            indoor = False

        return Place(
            place_id=place_id,
            name=name,
            category=category,
            lat=lat,
            lng=lng,
            preferred_duration_minutes=DEFAULT_TYPE_DURATION.get(category, DEFAULT_VISIT_MINUTES),
            opening_windows=windows,
            rating=raw.get("rating"),
            user_ratings_total=raw.get("user_ratings_total"),
            score=score_place(raw.get("rating"), raw.get("user_ratings_total"), distance_km),
            indoor=indoor,
        )

    async def _fetch_opening_windows(self, place_id: str) -> list[OpeningWindow]:
        data = await self._get_json(self.DETAILS_URL, {
            "place_id": place_id,
            "fields": "opening_hours,current_opening_hours",
            "key": self.api_key,
        })
        if data.get("status") != "OK":
            return []
        result = data.get("result") or {}
        hours = result.get("current_opening_hours") or result.get("opening_hours") or {}
        return parse_opening_periods(hours.get("periods") or [], self.on_date or dt.date.today())

    async def search(
        self,
        lat: float,
        lng: float,
        radius_m: int,
        category_hint: Optional[str] = None,
    ) -> list[Place]:
        params = {
            "location": f"{lat},{lng}",
            "radius": radius_m,
            "key": self.api_key,
        }
        if category_hint:
            params["type"] = CATEGORY_TO_GOOGLE_TYPE.get(category_hint, category_hint)

        data = await self._get_json(self.base_url, params)
        status = data.get("status", "UNKNOWN")
        if status == "ZERO_RESULTS":
            logger.info(f"No places near ({lat}, {lng}) for {category_hint or 'any'}")
            return []
        if status != "OK":
            raise ExternalServiceUnavailable("places", f"status {status}")

        raw_results = data.get("results", [])
        windows_per_place: list[list[OpeningWindow]] = [[] for _ in raw_results]
        if self.fetch_opening_hours and raw_results:
            factories = [
                (lambda pid=raw.get("place_id"): call_with_fallback(
                    lambda: self._fetch_opening_windows(pid),
                    list,
                    self.timeout_seconds,
                    label=f"place details {pid}",
                ))
                for raw in raw_results
            ]
            windows_per_place = await gather_paced(
                factories, DETAILS_BATCH_SIZE, settings.routing_batch_delay_seconds
            )

        center = GeoPoint(lat=lat, lng=lng)
        places = []
        for raw, windows in zip(raw_results, windows_per_place):
            place = self._parse_place(raw, center, windows)
            if place:
                places.append(place)

        logger.info(f"Fetched {len(places)} places from Google Places API")
        return sorted(places, key=lambda p: p.score, reverse=True)


def get_place_catalog_provider() -> PlaceCatalogProvider:
    """
    Factory function to get the place catalog based on settings.

    Returns:
        PlaceCatalogProvider instance
    """
    provider_type = settings.place_catalog_provider.lower()

    if provider_type == "google_places":
        if settings.google_maps_api_key:
            logger.info("Using Google Places catalog")
            return GooglePlacesCatalogProvider()
        logger.warning(
            "GOOGLE_MAPS_API_KEY not set, falling back to the static catalog. "
            "Set PLACE_CATALOG_PROVIDER=static to suppress this warning."
        )

    return StaticPlaceCatalogProvider()
