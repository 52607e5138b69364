"""
Request/Response schemas for API endpoints.
These schemas define the contract between clients and the engine.
"""
from datetime import date, datetime, time
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from itinerary_engine.domain.models import (
    ActivityLevel,
    AdjustmentCandidate,
    DayPlan,
    FatigueState,
    FatigueThresholdCrossed,
    GeoPoint,
    ItemStatus,
    OpeningWindow,
    Place,
    PostponedActivity,
    RecoveryResult,
    ScheduleStatus,
    TripPlan,
    VenueType,
)
from itinerary_engine.domain.time_utils import DEFAULT_DURATION_MINUTES, parse_duration_minutes


class PlaceInput(BaseModel):
    """A candidate place as supplied by the client. Duration may be free-form text."""
    place_id: str = Field(min_length=1, description="Catalog identity of the place")
    name: str = Field(min_length=1, max_length=200, description="Display name")
    category: str = Field(default="attraction", description="Category tag")
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    duration: Optional[Union[str, int, float]] = Field(
        default=None,
        description="Preferred visit length: minutes, '1.5 hours', '2h 30m', '45 min'..."
    )
    opens_at: Optional[time] = Field(default=None, description="Opening time on the trip days")
    closes_at: Optional[time] = Field(default=None, description="Closing time on the trip days")
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    score: float = Field(default=0.0, description="Ranking score; higher is planned first")
    indoor: Optional[bool] = Field(default=None)

    def to_place(self, default_duration_minutes: int = DEFAULT_DURATION_MINUTES) -> Place:
        """Build the domain place; an unparsable duration falls back to `default_duration_minutes`."""
        windows = []
        if self.opens_at is not None or self.closes_at is not None:
            windows.append(OpeningWindow(opens_at=self.opens_at, closes_at=self.closes_at))
        return Place(
            place_id=self.place_id,
            name=self.name,
            category=self.category,
            lat=self.lat,
            lng=self.lng,
            preferred_duration_minutes=parse_duration_minutes(self.duration, default=default_duration_minutes),
            opening_windows=windows,
            rating=self.rating,
            score=self.score,
            indoor=self.indoor,
        )


class TripPlanRequest(BaseModel):
    """Request schema for planning a new trip."""
    origin: GeoPoint = Field(description="Homebase (hotel) location")
    start_date: date = Field(description="Trip start date")
    end_date: date = Field(description="Trip end date (inclusive)")
    places: list[PlaceInput] = Field(default_factory=list, description="Candidate places")
    must_see: list[str] = Field(default_factory=list, description="Place ids to anchor first")
    avoid: list[str] = Field(default_factory=list, description="Place ids or names to leave out")
    start_time: Optional[str] = Field(default=None, description="Day start 'HH:MM' (default 09:00)")

    class Config:
        json_schema_extra = {
            "example": {
                "origin": {"lat": 48.8566, "lng": 2.3522},
                "start_date": "2024-06-15",
                "end_date": "2024-06-16",
                "places": [
                    {"place_id": "louvre", "name": "Louvre", "category": "museum",
                     "lat": 48.8606, "lng": 2.3376, "duration": "3 hours",
                     "opens_at": "09:00:00", "closes_at": "18:00:00", "score": 9.5},
                    {"place_id": "tuileries", "name": "Jardin des Tuileries", "category": "park",
                     "lat": 48.8635, "lng": 2.3275, "duration": "45 min", "score": 7.0},
                ],
                "must_see": ["louvre"],
                "start_time": "09:30",
            }
        }


class PositionRequest(BaseModel):
    """One live position/clock sample."""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    timestamp: datetime = Field(description="Clock time of the sample")
    accuracy_m: Optional[float] = Field(default=None, ge=0)


class StatusResponse(BaseModel):
    """Response for a monitoring tick."""
    trip_id: UUID
    day_index: int
    status: ScheduleStatus
    day: DayPlan
    candidates: list[AdjustmentCandidate] = Field(default_factory=list)


class ApplyAdjustmentRequest(BaseModel):
    candidate: AdjustmentCandidate = Field(description="Candidate returned by a status or fatigue call")


class AbandonDayRequest(BaseModel):
    from_index: int = Field(default=0, ge=0, description="First item index to abandon")
    reason: str = Field(default="day abandoned", max_length=200)


class PlacementResponse(BaseModel):
    source_item_id: str
    new_item_id: str
    name: str
    day_index: int
    date: date
    start_time: time
    end_time: time


class AbandonDayResponse(BaseModel):
    trip: TripPlan
    canceled_item_ids: list[str]
    placements: list[PlacementResponse]
    postponed: list[PostponedActivity]
    summary: str


class WeatherCheckResponse(BaseModel):
    severity: str
    condition: str
    at_risk_item_ids: list[str]
    recommend_abandon: bool
    suggestions: list[str]
    change_eta_minutes: Optional[int] = None


class HeartRateRequest(BaseModel):
    """Request schema for a wearable heart-rate sample."""
    day_index: int = Field(ge=0)
    heart_rate: Optional[float] = Field(
        default=None, gt=0, lt=250,
        description="Beats per minute; omit to use the walking estimate"
    )
    minutes: float = Field(gt=0, le=24 * 60, description="Minutes the sample covers")
    at: datetime = Field(description="Time of the sample")
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    activity_level: Optional[ActivityLevel] = Field(default=None)

    def position(self) -> Optional[GeoPoint]:
        if self.lat is None or self.lng is None:
            return None
        return GeoPoint(lat=self.lat, lng=self.lng)


class HeartRateResponse(BaseModel):
    state: FatigueState
    event: Optional[FatigueThresholdCrossed] = None
    candidates: list[AdjustmentCandidate] = Field(default_factory=list)
    rest_spots: list[Place] = Field(default_factory=list)


class RestRequest(BaseModel):
    minutes: float = Field(gt=0, le=24 * 60)
    venue: VenueType = Field(default=VenueType.CAFE)
    at: datetime
    activity_before: ActivityLevel = Field(default=ActivityLevel.MODERATE)


class RestResponse(BaseModel):
    state: FatigueState
    recovery: RecoveryResult


class ItemStatusesResponse(BaseModel):
    trip_id: UUID
    day_index: int
    statuses: dict[str, ItemStatus]
