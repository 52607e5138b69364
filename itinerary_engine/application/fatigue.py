"""
Fatigue budget tracker.

Fatigue is the share of the day's energy budget already spent:

- resting energy expenditure (REE) from the Harris-Benedict equations,
- daily budget = REE x activity multiplier,
- current expenditure from heart rate (Keytel formula, kJ/min -> kcal/h),
  floored at the resting rate below 85 BPM,
- every heart-rate sample adds expenditure x elapsed time to the total.

Rest periods give recovery credit that depends on rest length and venue.
Rising into High or Exhausted emits a FatigueThresholdCrossed event; the
replanning coordinator turns that event into schedule repairs.
"""
import datetime as dt
import logging
from typing import Optional

from itinerary_engine.config import settings, Settings
from itinerary_engine.domain.models import (
    ActivityLevel,
    BiometricProfile,
    FatigueLevel,
    FatigueState,
    FatigueThresholdCrossed,
    Gender,
    GeoPoint,
    Place,
    RecoveryResult,
    VenueType,
)
from itinerary_engine.infrastructure.pacing import CancellationToken, call_with_fallback, gather_paced
from itinerary_engine.infrastructure.place_catalog import PlaceCatalogProvider, get_place_catalog_provider

logger = logging.getLogger(__name__)

KJ_PER_KCAL = 4.184

ACTIVITY_MULTIPLIERS = {
    ActivityLevel.SEDENTARY: 1.2,
    ActivityLevel.LIGHT: 1.55,
    ActivityLevel.MODERATE: 1.75,
    ActivityLevel.VIGOROUS: 2.0,
}

VENUE_MULTIPLIERS = {
    VenueType.SPA: 1.3,
    VenueType.HOTEL: 1.2,
    VenueType.CAFE: 1.0,
    VenueType.PARK: 0.9,
}

# Upper bounds (exclusive) of each level, in percent of budget
LEVEL_THRESHOLDS = [
    (30.0, FatigueLevel.RESTED),
    (50.0, FatigueLevel.LIGHT),
    (70.0, FatigueLevel.MODERATE),
    (90.0, FatigueLevel.HIGH),
]

ALERT_LEVELS = {FatigueLevel.HIGH, FatigueLevel.EXHAUSTED}

MAX_RECOVERY_SHARE = 0.5
REST_SPOT_CATEGORIES = ["spa", "cafe", "park"]
REST_SPOT_BATCH_SIZE = 3


def calculate_ree(profile: BiometricProfile) -> float:
    """Resting energy expenditure in kcal/day (Harris-Benedict)."""
    w, h, a = profile.weight_kg, profile.height_cm, profile.age
    if profile.gender == Gender.MALE:
        return 66.5 + 13.75 * w + 5.003 * h - 6.775 * a
    return 655.1 + 9.563 * w + 1.850 * h - 4.676 * a


def energy_expenditure_from_heart_rate(
    heart_rate: float,
    profile: BiometricProfile,
    resting_floor_bpm: int = 85,
) -> float:
    """Current energy expenditure in kcal/hour. Never negative."""
    w, a = profile.weight_kg, profile.age
    if profile.gender == Gender.MALE:
        kj_per_min = -55.0969 + 0.6309 * heart_rate + 0.1988 * w + 0.2017 * a
    else:
        kj_per_min = -20.4022 + 0.4472 * heart_rate - 0.1263 * w + 0.074 * a

    kcal_per_hour = kj_per_min * 60 / KJ_PER_KCAL
    # The formula underestimates at resting heart rates
    if heart_rate < resting_floor_bpm:
        kcal_per_hour = max(kcal_per_hour, calculate_ree(profile) / 24)
    return max(0.0, kcal_per_hour)


def daily_energy_budget(profile: BiometricProfile, activity_level: ActivityLevel = ActivityLevel.LIGHT) -> float:
    return calculate_ree(profile) * ACTIVITY_MULTIPLIERS[activity_level]


def fatigue_level(percentage: float) -> FatigueLevel:
    for upper, level in LEVEL_THRESHOLDS:
        if percentage < upper:
            return level
    return FatigueLevel.EXHAUSTED


def recovery_efficiency(rest_minutes: float) -> float:
    """Share of current fatigue a rest of this length can recover (before venue scaling)."""
    t = max(0.0, rest_minutes)
    if t <= 30:
        return 0.25 * min(t, 30) / 30
    if t <= 60:
        return 0.25 + 0.15 * (t - 30) / 30
    return min(0.60, 0.40 + 0.20 * min(1.0, (t - 60) / 120))


def calculate_rest_recovery(
    percentage: float,
    rest_minutes: float,
    venue: VenueType,
    profile: BiometricProfile,
    activity_before: ActivityLevel = ActivityLevel.MODERATE,
) -> RecoveryResult:
    """
    Recovery credit for a rest period.

    Example: 70 % after 45 min at a spa -> efficiency 0.325, reduction
    29.575, new percentage 40.4.
    """
    efficiency = recovery_efficiency(rest_minutes)
    venue_multiplier = VENUE_MULTIPLIERS[venue]
    base_reduction = min(percentage * efficiency, percentage * MAX_RECOVERY_SHARE)
    reduction = base_reduction * venue_multiplier
    new_percentage = max(0.0, percentage - reduction)

    hourly_ree = calculate_ree(profile) / 24
    saved_per_hour = hourly_ree * (ACTIVITY_MULTIPLIERS[activity_before] - ACTIVITY_MULTIPLIERS[ActivityLevel.SEDENTARY])
    energy_saved = saved_per_hour * rest_minutes / 60

    return RecoveryResult(
        fatigue_reduction=round(reduction, 1),
        energy_saved_kcal=round(energy_saved),
        new_percentage=round(new_percentage, 1),
        recovery_efficiency=round(efficiency * venue_multiplier, 2),
    )


class FatigueTracker:
    """Keeps a FatigueState up to date from samples and rest events."""

    def __init__(
        self,
        profile: BiometricProfile,
        activity_level: Optional[ActivityLevel] = None,
        place_catalog: Optional[PlaceCatalogProvider] = None,
        app_settings: Optional[Settings] = None,
    ):
        """
        Initialize the tracker.

        Args:
            profile: Traveler biometrics
            activity_level: Travel intensity (defaults to settings.default_activity_level)
            place_catalog: Catalog used to look up rest spots
            app_settings: Settings override (for testing)
        """
        self._settings = app_settings or settings
        self.profile = profile
        self.activity_level = activity_level or ActivityLevel(self._settings.default_activity_level)
        self.place_catalog = place_catalog or get_place_catalog_provider()
        self.daily_budget = daily_energy_budget(profile, self.activity_level)

    def initial_state(self, at: Optional[dt.datetime] = None) -> FatigueState:
        return FatigueState(
            daily_budget_kcal=self.daily_budget,
            budget_remaining_kcal=self.daily_budget,
            updated_at=at,
        )

    def _state_for_total(self, total: float, ee: float, at: Optional[dt.datetime]) -> FatigueState:
        percentage = min(100.0, max(0.0, total / self.daily_budget * 100)) if self.daily_budget > 0 else 100.0
        return FatigueState(
            percentage=round(percentage, 1),
            level=fatigue_level(percentage),
            total_spent_kcal=total,
            daily_budget_kcal=self.daily_budget,
            budget_remaining_kcal=max(0.0, self.daily_budget - total),
            current_ee_kcal_per_hour=ee,
            updated_at=at,
        )

    @staticmethod
    def _crossing(before: FatigueState, after: FatigueState, at: dt.datetime) -> Optional[FatigueThresholdCrossed]:
        if after.level in ALERT_LEVELS and after.level.rank > before.level.rank:
            logger.warning(f"Fatigue rose to {after.level.value} ({after.percentage}%)")
            return FatigueThresholdCrossed(
                previous_level=before.level,
                level=after.level,
                percentage=after.percentage,
                occurred_at=at,
            )
        return None

    def record_heart_rate(
        self,
        state: FatigueState,
        heart_rate: float,
        minutes: float,
        at: dt.datetime,
    ) -> tuple[FatigueState, Optional[FatigueThresholdCrossed]]:
        """
        Add the expenditure of `minutes` at `heart_rate` to the state.

        Returns:
            The new state and a threshold event if High/Exhausted was entered
        """
        ee = energy_expenditure_from_heart_rate(
            heart_rate, self.profile, self._settings.resting_heart_rate_floor_bpm
        )
        total = state.total_spent_kcal + ee * max(0.0, minutes) / 60
        new_state = self._state_for_total(total, ee, at)
        # Percentage never drops outside rest
        if new_state.percentage < state.percentage:
            new_state.percentage = state.percentage
            new_state.level = state.level
        return new_state, self._crossing(state, new_state, at)

    def estimate_without_heart_rate(
        self,
        state: FatigueState,
        minutes: float,
        at: dt.datetime,
    ) -> tuple[FatigueState, Optional[FatigueThresholdCrossed]]:
        """Same as record_heart_rate at the assumed walking heart rate."""
        return self.record_heart_rate(state, self._settings.default_walking_heart_rate_bpm, minutes, at)

    def rest(
        self,
        state: FatigueState,
        minutes: float,
        venue: VenueType,
        at: dt.datetime,
        activity_before: ActivityLevel = ActivityLevel.MODERATE,
    ) -> tuple[FatigueState, RecoveryResult]:
        """Apply rest recovery. The spent total is rescaled to the new percentage."""
        recovery = calculate_rest_recovery(state.percentage, minutes, venue, self.profile, activity_before)
        total = recovery.new_percentage / 100 * self.daily_budget
        new_state = self._state_for_total(total, calculate_ree(self.profile) / 24, at)
        new_state.percentage = recovery.new_percentage
        logger.info(
            f"Rested {minutes} min at {venue.value}: {state.percentage}% -> {new_state.percentage}%"
        )
        return new_state, recovery

    async def find_rest_spots(
        self,
        position: GeoPoint,
        token: Optional[CancellationToken] = None,
    ) -> list[Place]:
        """Nearby spa, cafe and park venues. Empty on provider failure."""
        factories = [
            (lambda category=category: call_with_fallback(
                lambda: self.place_catalog.search(
                    position.lat,
                    position.lng,
                    self._settings.alternative_search_radius_meters,
                    category,
                ),
                list,
                self._settings.catalog_timeout_seconds,
                token=token,
                label=f"rest spots ({category})",
            ))
            for category in REST_SPOT_CATEGORIES
        ]
        batches = await gather_paced(
            factories, REST_SPOT_BATCH_SIZE, self._settings.routing_batch_delay_seconds, token=token
        )
        seen: set[str] = set()
        spots: list[Place] = []
        for places in batches:
            for place in places:
                if place.place_id not in seen:
                    seen.add(place.place_id)
                    spots.append(place)
        return sorted(spots, key=lambda p: p.score, reverse=True)


def venue_for(place: Optional[Place]) -> VenueType:
    """Map a rest place's category onto a venue type (cafe if unknown)."""
    if place is not None and place.category in {v.value for v in VenueType}:
        return VenueType(place.category)
    return VenueType.CAFE
