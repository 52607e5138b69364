"""
Configuration management for the Adaptive Itinerary engine.
Uses Pydantic Settings to load configuration from environment variables.
"""
from typing import Optional
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database (document store backend)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./itinerary_engine.db",
        description="SQLAlchemy async URL for the document store (asyncpg or aiosqlite driver)"
    )
    document_store_backend: str = Field(
        default="sql",
        description="Document store backend: 'sql' (SQLAlchemy) or 'memory'"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level for the engine")

    # Google Maps Platform
    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="Google Maps API key for Directions and Places APIs"
    )
    google_directions_base_url: str = Field(
        default="https://maps.googleapis.com/maps/api/directions/json",
        description="Base URL for Google Directions API"
    )
    google_places_nearby_url: str = Field(
        default="https://maps.googleapis.com/maps/api/place/nearbysearch/json",
        description="Base URL for Google Places Nearby Search API"
    )
    google_places_timeout_seconds: int = Field(
        default=10,
        description="HTTP timeout for Google Places API calls"
    )

    # OpenWeather
    openweather_api_key: Optional[str] = Field(default=None, description="OpenWeather API key")
    openweather_base_url: str = Field(
        default="https://api.openweathermap.org/data/2.5",
        description="Base URL for OpenWeather API"
    )
    weather_provider: str = Field(
        default="static",
        description="Weather provider: 'static' (always clear) or 'openweather'"
    )

    # Provider selection
    routing_provider: str = Field(
        default="heuristic",
        description="Routing provider: 'heuristic' (haversine) or 'google_maps'"
    )
    place_catalog_provider: str = Field(
        default="static",
        description="Place catalog provider: 'static' (in-memory) or 'google_places'"
    )
    routing_mode: str = Field(default="transit", description="Default travel mode: transit, driving, walking")

    # =========================================================================
    # Travel graph
    # =========================================================================

    max_graph_places: int = Field(
        default=8,
        description="Maximum candidate places per travel graph (O(N^2) routing lookups)"
    )
    routing_timeout_seconds: float = Field(
        default=10.0,
        description="Per-lookup timeout for routing calls; exceeded lookups use the fallback edge"
    )
    routing_batch_size: int = Field(
        default=4,
        description="Concurrent routing lookups per batch (keeps provider throttling away)"
    )
    routing_batch_delay_seconds: float = Field(
        default=0.1,
        description="Pause between routing batches"
    )
    fallback_travel_seconds: int = Field(
        default=15 * 60,
        description="Fallback edge duration when a routing lookup fails"
    )

    # =========================================================================
    # Timeline
    # =========================================================================

    day_start_time: str = Field(default="09:00", description="Default day-start anchor (HH:MM)")
    default_duration_minutes: int = Field(
        default=60,
        description="Duration used when a free-form duration string cannot be parsed"
    )
    closing_min_visit_minutes: int = Field(
        default=45,
        description="Minimum visit length when shrinking a stop to fit before closing"
    )
    lunch_window: tuple[str, str] = Field(default=("12:00", "14:00"), description="Lunch window")
    dinner_window: tuple[str, str] = Field(default=("18:00", "20:00"), description="Dinner window")

    # =========================================================================
    # Schedule monitoring & adjustments
    # =========================================================================

    behind_schedule_tolerance_minutes: int = Field(
        default=10,
        description="Delay tolerated before the traveler counts as behind schedule"
    )
    default_transition_minutes: int = Field(
        default=15,
        description="Transition time used when neither travel time nor gap is known"
    )
    arrival_radius_meters: float = Field(
        default=100.0,
        description="Distance at which the traveler counts as being at an activity"
    )
    reschedule_threshold_minutes: int = Field(
        default=30,
        description="Delay above which reschedule_remaining is offered"
    )
    reschedule_buffer_minutes: int = Field(
        default=15,
        description="Buffer between stops when re-linearizing the remaining day"
    )
    cap_reschedule_at_day_end: bool = Field(
        default=False,
        description="Drop rescheduled stops that would end after day_end_time"
    )
    alternative_min_rating: float = Field(
        default=3.5,
        description="Minimum rating for replace_next alternatives"
    )
    alternative_search_radius_meters: int = Field(
        default=3000,
        description="Catalog search radius for replacement alternatives and rest spots"
    )
    catalog_timeout_seconds: float = Field(
        default=8.0,
        description="Timeout for a single place catalog lookup"
    )
    rest_stop_minutes: int = Field(default=30, description="Length of an inserted rest stop")

    # =========================================================================
    # Multi-day planning & redistribution
    # =========================================================================

    day_end_time: str = Field(default="22:00", description="End of the usable day window (HH:MM)")
    redistribution_day_start: str = Field(
        default="09:00",
        description="Start of the day window used for redistribution capacity"
    )
    max_stops_per_day: int = Field(default=5, description="Candidate places per planned day")
    pool_size: int = Field(default=30, description="Alternates kept in each day's pool")

    # =========================================================================
    # Fatigue
    # =========================================================================

    resting_heart_rate_floor_bpm: int = Field(
        default=85,
        description="Below this heart rate, expenditure is floored at the resting rate"
    )
    default_walking_heart_rate_bpm: int = Field(
        default=100,
        description="Assumed heart rate when no wearable data is available"
    )
    default_activity_level: str = Field(
        default="light",
        description="Activity level for the daily energy budget (sedentary, light, moderate, vigorous)"
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")

    @model_validator(mode='after')
    def check_provider_keys(self) -> 'Settings':
        if self.document_store_backend not in ("sql", "memory"):
            raise ValueError(
                f"DOCUMENT_STORE_BACKEND must be 'sql' or 'memory', got '{self.document_store_backend}'"
            )
        if self.routing_batch_size < 1:
            raise ValueError("ROUTING_BATCH_SIZE must be at least 1")
        return self


# Global settings instance
settings = Settings()
