"""
Engine error types.

Providers raise these; the planning components catch them at their
boundaries and degrade to fallback values, so callers of the public
planning API only ever see a usable (possibly degraded) plan.
"""
from typing import Optional


class EngineError(Exception):
    """Base class for all engine errors."""


class ExternalServiceUnavailable(EngineError):
    """A routing, place or weather provider timed out or answered badly."""

    def __init__(self, service: str, detail: str = ""):
        self.service = service
        self.detail = detail
        super().__init__(f"{service} unavailable: {detail}" if detail else f"{service} unavailable")


class InvalidTimeFormat(EngineError, ValueError):
    """A duration or time-of-day string could not be parsed."""

    def __init__(self, raw: object):
        self.raw = raw
        super().__init__(f"Invalid time format: {raw!r}")


class NoFeasibleSlot(EngineError):
    """A stop cannot fit before its venue closes, even after shrinking."""

    def __init__(self, place_name: str, available_minutes: int, required_minutes: int):
        self.place_name = place_name
        self.available_minutes = available_minutes
        self.required_minutes = required_minutes
        super().__init__(
            f"No feasible slot for {place_name}: {available_minutes} min available, "
            f"{required_minutes} min required"
        )


class CorruptPersistedState(EngineError):
    """A stored document could not be decoded."""

    def __init__(self, key: str, detail: Optional[str] = None):
        self.key = key
        super().__init__(f"Corrupt persisted state at {key}: {detail or 'unreadable'}")


class InvalidStatusTransition(EngineError, ValueError):
    """An itinerary item was moved to a status its state machine does not allow."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move item from '{current}' to '{requested}'")


class TripNotFound(EngineError, LookupError):
    """No stored trip plan under this id."""

    def __init__(self, trip_id: object):
        self.trip_id = trip_id
        super().__init__(f"Trip {trip_id} not found")


class ProfileNotSet(EngineError, ValueError):
    """Fatigue tracking was requested before a biometric profile was stored."""

    def __init__(self):
        super().__init__("Biometric profile not set; PUT /api/profile first")
