"""
Fatigue API endpoints: heart-rate samples and rest periods.
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from itinerary_engine.api.dependencies import get_coordinator
from itinerary_engine.application.replanning import ReplanningCoordinator
from itinerary_engine.domain.errors import ProfileNotSet, TripNotFound
from itinerary_engine.domain.models import FatigueState
from itinerary_engine.domain.schemas import (
    HeartRateRequest,
    HeartRateResponse,
    RestRequest,
    RestResponse,
)


router = APIRouter(prefix="/trips/{trip_id}/fatigue", tags=["fatigue"])


@router.get(
    "",
    response_model=FatigueState,
    summary="Get the current fatigue state",
)
async def get_fatigue(
    trip_id: UUID,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> FatigueState:
    try:
        state = await coordinator.fatigue(trip_id)
    except TripNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Trip with ID {trip_id} not found")
    return state or FatigueState()


@router.post(
    "/heart-rate",
    response_model=HeartRateResponse,
    summary="Record a heart-rate sample",
    description="Update the energy budget. Crossing into High or Exhausted returns rest and schedule repairs."
)
async def record_heart_rate(
    trip_id: UUID,
    request: HeartRateRequest,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> HeartRateResponse:
    try:
        result = await coordinator.record_heart_rate(
            trip_id,
            request.day_index,
            request.heart_rate,
            request.minutes,
            request.at,
            position=request.position(),
            activity_level=request.activity_level,
        )
    except TripNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Trip with ID {trip_id} not found")
    except ProfileNotSet as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return HeartRateResponse(
        state=result.state,
        event=result.event,
        candidates=result.candidates,
        rest_spots=result.rest_spots,
    )


@router.post(
    "/rest",
    response_model=RestResponse,
    summary="Record a rest period",
)
async def rest(
    trip_id: UUID,
    request: RestRequest,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> RestResponse:
    try:
        state, recovery = await coordinator.rest(
            trip_id, request.minutes, request.venue, request.at, request.activity_before
        )
    except TripNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Trip with ID {trip_id} not found")
    except ProfileNotSet as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return RestResponse(state=state, recovery=recovery)
