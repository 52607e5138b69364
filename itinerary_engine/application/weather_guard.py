"""
Weather guard.
Flags outdoor stops that bad weather puts at risk. Severe weather is one of
the triggers for abandoning the rest of a day.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from itinerary_engine.domain.models import GeoPoint, ItemStatus, ItineraryItem
from itinerary_engine.infrastructure.pacing import CancellationToken, call_with_fallback
from itinerary_engine.infrastructure.weather import WeatherProvider, get_weather_provider

logger = logging.getLogger(__name__)


class WeatherSeverity(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    MODERATE = "moderate"
    POOR = "poor"
    SEVERE = "severe"


SEVERITY_CONDITIONS = {
    WeatherSeverity.EXCELLENT: {"clear", "sunny"},
    WeatherSeverity.GOOD: {"clouds", "partly cloudy"},
    WeatherSeverity.MODERATE: {"overcast", "fog", "mist"},
    WeatherSeverity.POOR: {"rain", "drizzle", "light rain"},
    WeatherSeverity.SEVERE: {"thunderstorm", "heavy rain", "snow", "blizzard", "hail"},
}

OUTDOOR_CATEGORIES = {
    "park", "beach", "zoo", "garden", "landmark", "tourist_attraction",
    "amusement_park", "stadium", "sports", "market", "hiking", "outdoor_market",
}

WEATHER_TIMEOUT_SECONDS = 8.0
WAIT_OUT_MINUTES = 60


def classify_condition(condition: Optional[str]) -> WeatherSeverity:
    """Severity class of a provider condition string. Unknown conditions count as moderate."""
    key = (condition or "").strip().lower()
    for severity, conditions in SEVERITY_CONDITIONS.items():
        if key in conditions:
            return severity
    return WeatherSeverity.MODERATE


def is_outdoor(item: ItineraryItem) -> bool:
    if item.place is not None and item.place.indoor is not None:
        return not item.place.indoor
    return item.category in OUTDOOR_CATEGORIES


@dataclass
class WeatherAssessment:
    severity: WeatherSeverity
    condition: str
    at_risk_indexes: list[int] = field(default_factory=list)
    recommend_abandon: bool = False
    suggestions: list[str] = field(default_factory=list)
    change_eta_minutes: Optional[int] = None

    @property
    def should_adapt(self) -> bool:
        return bool(self.at_risk_indexes)


class WeatherGuard:
    """Assesses pending outdoor stops against the current weather."""

    def __init__(self, weather_provider: Optional[WeatherProvider] = None):
        self.weather_provider = weather_provider or get_weather_provider()

    def assess(self, condition: Optional[str], items: list[ItineraryItem]) -> WeatherAssessment:
        severity = classify_condition(condition)
        assessment = WeatherAssessment(severity=severity, condition=condition or "")
        if severity not in (WeatherSeverity.POOR, WeatherSeverity.SEVERE):
            return assessment

        assessment.at_risk_indexes = [
            idx for idx, item in enumerate(items)
            if item.status == ItemStatus.PENDING and is_outdoor(item)
        ]
        if severity == WeatherSeverity.SEVERE:
            assessment.recommend_abandon = bool(assessment.at_risk_indexes)
            assessment.suggestions = [
                "Strongly recommend indoor alternatives",
                "Avoid outdoor activities",
                "Consider postponing if possible",
            ]
        else:
            assessment.suggestions = [
                "Consider indoor alternatives",
                "Bring umbrella or rain gear",
                "Check if venue has covered areas",
            ]
        return assessment

    async def check(
        self,
        position: GeoPoint,
        items: list[ItineraryItem],
        token: Optional[CancellationToken] = None,
    ) -> WeatherAssessment:
        """Fetch current weather and assess. A provider failure means no adaptation."""
        report = await call_with_fallback(
            lambda: self.weather_provider.current(position.lat, position.lng),
            lambda: None,
            WEATHER_TIMEOUT_SECONDS,
            token=token,
            label="current weather",
        )
        if report is None:
            return WeatherAssessment(severity=WeatherSeverity.GOOD, condition="unknown")

        assessment = self.assess(report.condition, items)
        if assessment.should_adapt:
            assessment.change_eta_minutes = await call_with_fallback(
                lambda: self.weather_provider.forecast_change_eta(position.lat, position.lng),
                lambda: None,
                WEATHER_TIMEOUT_SECONDS,
                token=token,
                label="weather forecast",
            )
            eta = assessment.change_eta_minutes
            if eta is not None and eta <= WAIT_OUT_MINUTES:
                assessment.suggestions.append(f"Conditions expected to change in about {eta} minutes")
            logger.info(
                f"Weather '{report.condition}' ({assessment.severity.value}) affects "
                f"{len(assessment.at_risk_indexes)} outdoor stops"
            )
        return assessment
