"""
Core domain models for the Adaptive Itinerary engine.
All models use Pydantic v2 for type safety and validation.
"""
import datetime as dt
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from itinerary_engine.domain.errors import InvalidStatusTransition


# Enums for constrained values

class ItemStatus(str, Enum):
    """Lifecycle state of a single itinerary item."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    CANCELED = "canceled"


# pending -> in_progress -> completed | skipped | canceled
ALLOWED_TRANSITIONS: dict[ItemStatus, set[ItemStatus]] = {
    ItemStatus.PENDING: {ItemStatus.IN_PROGRESS, ItemStatus.SKIPPED, ItemStatus.CANCELED},
    ItemStatus.IN_PROGRESS: {ItemStatus.COMPLETED, ItemStatus.SKIPPED, ItemStatus.CANCELED},
    ItemStatus.COMPLETED: set(),
    ItemStatus.SKIPPED: set(),
    ItemStatus.CANCELED: set(),
}

OPEN_STATUSES = {ItemStatus.PENDING, ItemStatus.IN_PROGRESS}


class AdjustmentType(str, Enum):
    """Kind of schedule repair proposed by the adjustment generator."""
    EXTEND_CURRENT = "extend_current"
    SKIP_NEXT = "skip_next"
    REPLACE_NEXT = "replace_next"
    RESCHEDULE_REMAINING = "reschedule_remaining"
    INSERT_REST = "insert_rest"


class MealType(str, Enum):
    """Meal windows annotated on the timeline."""
    LUNCH = "lunch"
    DINNER = "dinner"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class ActivityLevel(str, Enum):
    """Travel intensity used for the daily energy budget."""
    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    VIGOROUS = "vigorous"


class FatigueLevel(str, Enum):
    """Ordinal fatigue classification of the energy budget percentage."""
    RESTED = "Rested"
    LIGHT = "Light"
    MODERATE = "Moderate"
    HIGH = "High"
    EXHAUSTED = "Exhausted"

    @property
    def rank(self) -> int:
        return _FATIGUE_ORDER.index(self)


_FATIGUE_ORDER = [
    FatigueLevel.RESTED,
    FatigueLevel.LIGHT,
    FatigueLevel.MODERATE,
    FatigueLevel.HIGH,
    FatigueLevel.EXHAUSTED,
]


class VenueType(str, Enum):
    """Where the traveler rests; affects recovery efficiency."""
    SPA = "spa"
    HOTEL = "hotel"
    CAFE = "cafe"
    PARK = "park"


# Domain Models

class GeoPoint(BaseModel):
    """A latitude/longitude pair."""
    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90, description="Latitude")
    lng: float = Field(ge=-180, le=180, description="Longitude")


class OpeningWindow(BaseModel):
    """One opening interval of a venue for the planned day."""
    model_config = ConfigDict(frozen=True)

    opens_at: Optional[dt.time] = Field(default=None, description="Opening time (None = open from day start)")
    closes_at: Optional[dt.time] = Field(default=None, description="Closing time (None = open late)")


class Place(BaseModel):
    """A venue fetched from the place catalog. Read-only within a planning session."""
    model_config = ConfigDict(frozen=True)

    place_id: str = Field(description="Catalog identity of the place")
    name: str = Field(description="Display name")
    category: str = Field(default="attraction", description="Normalized category tag")
    lat: Optional[float] = Field(default=None, description="Latitude coordinate")
    lng: Optional[float] = Field(default=None, description="Longitude coordinate")
    preferred_duration_minutes: int = Field(default=90, ge=1, description="Preferred visit length in minutes")
    opening_windows: list[OpeningWindow] = Field(default_factory=list, description="Opening windows for the day")
    rating: Optional[float] = Field(default=None, ge=0, le=5, description="Rating (0-5)")
    user_ratings_total: Optional[int] = Field(default=None, description="Total number of ratings")
    score: float = Field(default=0.0, description="Ranking score used by the trip planner")
    indoor: Optional[bool] = Field(default=None, description="True for indoor venues, None if unknown")

    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def location(self) -> Optional[GeoPoint]:
        if not self.has_coordinates():
            return None
        return GeoPoint(lat=self.lat, lng=self.lng)


class TravelEdge(BaseModel):
    """Directed travel-time edge between two graph nodes."""
    from_id: str = Field(description="Origin node id")
    to_id: str = Field(description="Destination node id")
    duration_seconds: int = Field(ge=0, description="Travel duration in seconds")
    instructions: str = Field(default="", description="Human-readable directions")
    is_fallback: bool = Field(default=False, description="True if the edge is the fallback estimate")

    @property
    def duration_minutes(self) -> int:
        return round(self.duration_seconds / 60)


class ItineraryItem(BaseModel):
    """A timed visit (or ad-hoc rest stop) on one day."""
    item_id: str = Field(default_factory=lambda: uuid4().hex, description="Stable item identity")
    place: Optional[Place] = Field(default=None, description="Visited place (None for an ad-hoc stop)")
    name: str = Field(description="Display name")
    category: str = Field(default="attraction", description="Category tag")
    start_time: dt.time = Field(description="Planned start")
    end_time: dt.time = Field(description="Planned end")
    duration_minutes: int = Field(ge=0, description="Planned visit length in minutes")
    travel_minutes_from_previous: int = Field(default=0, ge=0, description="Travel time from the previous stop")
    travel_instructions: Optional[str] = Field(default=None, description="Directions from the previous stop")
    order: int = Field(default=1, ge=1, description="1-based position in the day")
    status: ItemStatus = Field(default=ItemStatus.PENDING, description="Lifecycle state")
    cancel_reason: Optional[str] = Field(default=None, description="Why the item was canceled")
    meal_suggestion: Optional[str] = Field(default=None, description="Non-blocking meal hint")
    notes: Optional[str] = Field(default=None, description="Additional notes")
    is_rest_stop: bool = Field(default=False, description="True for inserted recovery stops")
    rescheduled: bool = Field(default=False, description="True if times were re-linearized")
    replaced_from: Optional[str] = Field(default=None, description="Name of the item this one replaced")

    @classmethod
    def from_place(cls, place: Place, start_time: dt.time, end_time: dt.time, **kwargs) -> "ItineraryItem":
        return cls(
            place=place,
            name=place.name,
            category=place.category,
            start_time=start_time,
            end_time=end_time,
            duration_minutes=kwargs.pop("duration_minutes", place.preferred_duration_minutes),
            **kwargs,
        )

    @property
    def place_id(self) -> Optional[str]:
        return self.place.place_id if self.place else None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def transition_to(self, status: ItemStatus, reason: Optional[str] = None) -> None:
        """
        Move the item along its state machine.

        Raises:
            InvalidStatusTransition: If the move is not allowed
        """
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(self.status.value, status.value)
        if status == ItemStatus.CANCELED:
            self.cancel_reason = reason or "canceled"
        self.status = status


class DayPlan(BaseModel):
    """One day of the trip."""
    date: dt.date = Field(description="Calendar date")
    items: list[ItineraryItem] = Field(default_factory=list, description="Ordered items for the day")
    anchor_place_ids: list[str] = Field(default_factory=list, description="Places required on this day")
    pool: list[Place] = Field(default_factory=list, description="Unused alternates for fast replacement")
    notices: list[str] = Field(default_factory=list, description="Soft warnings for the traveler")

    def active_items(self) -> list[ItineraryItem]:
        """Items that still occupy time (everything except canceled)."""
        return [item for item in self.items if item.status != ItemStatus.CANCELED]

    def renumber(self) -> None:
        for idx, item in enumerate(self.items, start=1):
            item.order = idx


class PostponedActivity(BaseModel):
    """A canceled activity that found no room on any future day."""
    item: ItineraryItem = Field(description="Snapshot of the canceled item")
    source_date: dt.date = Field(description="Day the activity was abandoned on")
    reason: str = Field(description="Why it was abandoned")
    postponed_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)


class TripPlan(BaseModel):
    """A multi-day trip. The only shared mutable document of the engine."""
    trip_id: UUID = Field(default_factory=uuid4, description="Unique trip ID")
    start_date: dt.date = Field(description="Trip start date")
    end_date: dt.date = Field(description="Trip end date")
    origin: GeoPoint = Field(description="Homebase the days start from")
    days: list[DayPlan] = Field(default_factory=list, description="Ordered day plans")
    postponed: list[PostponedActivity] = Field(default_factory=list, description="Activities awaiting manual rescheduling")

    def duplicate_place_ids(self) -> list[str]:
        """Place ids that appear as non-canceled items on more than one day."""
        seen_on: dict[str, int] = {}
        duplicates: list[str] = []
        for day_index, day in enumerate(self.days):
            for item in day.active_items():
                if item.is_rest_stop or item.place_id is None:
                    continue
                first = seen_on.setdefault(item.place_id, day_index)
                if first != day_index and item.place_id not in duplicates:
                    duplicates.append(item.place_id)
        return duplicates


class ScheduleStatus(BaseModel):
    """Derived lateness snapshot, recomputed on every monitoring tick."""
    current_activity_index: int = Field(default=0, ge=0)
    is_behind_schedule: bool = Field(default=False)
    delay_minutes: int = Field(default=0, ge=0)
    next_activity_start: Optional[dt.time] = Field(default=None)
    current_activity_end: Optional[dt.time] = Field(default=None)
    required_departure: Optional[dt.time] = Field(default=None)

    @property
    def is_on_time(self) -> bool:
        return not self.is_behind_schedule


class AdjustmentCandidate(BaseModel):
    """A proposed, not yet applied, schedule repair."""
    type: AdjustmentType = Field(description="Kind of repair")
    items: list[ItineraryItem] = Field(description="Resulting full itinerary for the day")
    description: str = Field(description="Short label")
    impact: str = Field(description="Human-readable consequence")
    time_saved_minutes: int = Field(default=0, description="Minutes recovered by this repair")


class BiometricProfile(BaseModel):
    """Body data for energy expenditure formulas."""
    gender: Gender = Field(description="Formula variant")
    age: int = Field(gt=0, lt=130, description="Age in years")
    weight_kg: float = Field(gt=0, description="Weight in kilograms")
    height_cm: float = Field(gt=0, description="Height in centimetres")


class FatigueState(BaseModel):
    """Energy-budget snapshot, updated on every sample and rest event."""
    percentage: float = Field(default=0.0, ge=0, le=100, description="Share of daily budget spent")
    level: FatigueLevel = Field(default=FatigueLevel.RESTED)
    total_spent_kcal: float = Field(default=0.0, ge=0)
    daily_budget_kcal: float = Field(default=0.0, ge=0)
    budget_remaining_kcal: float = Field(default=0.0, ge=0)
    current_ee_kcal_per_hour: float = Field(default=0.0, ge=0)
    updated_at: Optional[dt.datetime] = Field(default=None)


class RecoveryResult(BaseModel):
    """Outcome of a rest period."""
    fatigue_reduction: float = Field(description="Percentage points removed")
    energy_saved_kcal: float = Field(description="Energy not spent thanks to resting")
    new_percentage: float = Field(description="Fatigue percentage after rest")
    recovery_efficiency: float = Field(description="Effective efficiency after venue scaling")


class FatigueThresholdCrossed(BaseModel):
    """Emitted when fatigue rises into High or Exhausted."""
    previous_level: FatigueLevel
    level: FatigueLevel
    percentage: float
    occurred_at: dt.datetime


class PositionSample(BaseModel):
    """One reading from the live position/clock feed."""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    timestamp: dt.datetime = Field(description="Clock time of the reading")
    accuracy_m: Optional[float] = Field(default=None, ge=0)

    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)


class WeatherReport(BaseModel):
    """Current conditions from the weather provider."""
    condition: str = Field(default="Clear", description="Main condition, e.g. 'Rain'")
    temperature_c: Optional[float] = Field(default=None)
    description: str = Field(default="")
    observed_at: Optional[dt.datetime] = Field(default=None)
