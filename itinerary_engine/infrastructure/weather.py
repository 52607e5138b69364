"""
Weather provider abstraction.
"""
import datetime as dt
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from itinerary_engine.config import settings
from itinerary_engine.domain.errors import ExternalServiceUnavailable
from itinerary_engine.domain.models import WeatherReport

logger = logging.getLogger(__name__)


class WeatherProvider(ABC):
    """Abstract base class for weather lookups."""

    @abstractmethod
    async def current(self, lat: float, lng: float) -> WeatherReport:
        """
        Current conditions at a point.

        Raises:
            ExternalServiceUnavailable: If the provider cannot be reached
        """
        pass

    @abstractmethod
    async def forecast_change_eta(self, lat: float, lng: float) -> Optional[int]:
        """Minutes until the main condition is forecast to change, or None if stable."""
        pass


class StaticWeatherProvider(WeatherProvider):
    """Fixed conditions. Used offline and in tests."""

    def __init__(self, condition: str = "Clear", change_eta_minutes: Optional[int] = None):
        self.condition = condition
        self.change_eta_minutes = change_eta_minutes

    async def current(self, lat: float, lng: float) -> WeatherReport:
        return WeatherReport(condition=self.condition, description=self.condition.lower())

    async def forecast_change_eta(self, lat: float, lng: float) -> Optional[int]:
        return self.change_eta_minutes


class OpenWeatherProvider(WeatherProvider):
    """OpenWeather current weather and 3-hourly forecast."""

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout_seconds: float = 8.0,
    ):
        if not api_key:
            raise ValueError("OpenWeather API key is required")
        self.api_key = api_key
        self.base_url = (base_url or settings.openweather_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds

    async def _get(self, path: str, lat: float, lng: float) -> dict:
        params = {"lat": lat, "lon": lng, "appid": self.api_key, "units": "metric"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(f"{self.base_url}/{path}", params=params)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            raise ExternalServiceUnavailable("weather", f"timeout after {self.timeout_seconds}s") from e
        except httpx.HTTPStatusError as e:
            raise ExternalServiceUnavailable("weather", f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ExternalServiceUnavailable("weather", str(e)) from e

    async def current(self, lat: float, lng: float) -> WeatherReport:
        data = await self._get("weather", lat, lng)
        conditions = data.get("weather") or [{}]
        observed = data.get("dt")
        return WeatherReport(
            condition=conditions[0].get("main", "Clear"),
            description=conditions[0].get("description", ""),
            temperature_c=(data.get("main") or {}).get("temp"),
            observed_at=dt.datetime.fromtimestamp(observed, tz=dt.timezone.utc) if observed else None,
        )

    async def forecast_change_eta(self, lat: float, lng: float) -> Optional[int]:
        data = await self._get("forecast", lat, lng)
        slots = data.get("list") or []
        if not slots:
            return None

        def main_of(slot: dict) -> Optional[str]:
            return (slot.get("weather") or [{}])[0].get("main")

        now = dt.datetime.now(dt.timezone.utc)
        first = main_of(slots[0])
        for slot in slots[1:]:
            if main_of(slot) != first and slot.get("dt"):
                at = dt.datetime.fromtimestamp(slot["dt"], tz=dt.timezone.utc)
                return max(0, int((at - now).total_seconds() // 60))
        return None


def get_weather_provider() -> WeatherProvider:
    """
    Factory function to get weather provider based on settings.

    Returns:
        WeatherProvider instance
    """
    if settings.weather_provider.lower() == "openweather":
        if settings.openweather_api_key:
            logger.info("Using OpenWeather provider")
            return OpenWeatherProvider(api_key=settings.openweather_api_key)
        logger.warning("OPENWEATHER_API_KEY not set, falling back to static weather")

    return StaticWeatherProvider()
