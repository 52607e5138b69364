"""
Trips API endpoints: planning, live status ticks and schedule repairs.
"""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from itinerary_engine.api.dependencies import get_coordinator
from itinerary_engine.application.replanning import ReplanningCoordinator
from itinerary_engine.domain.errors import TripNotFound
from itinerary_engine.domain.models import DayPlan, GeoPoint, PositionSample, TripPlan
from itinerary_engine.domain.schemas import (
    AbandonDayRequest,
    AbandonDayResponse,
    ApplyAdjustmentRequest,
    ItemStatusesResponse,
    PlacementResponse,
    PositionRequest,
    StatusResponse,
    TripPlanRequest,
    WeatherCheckResponse,
)


router = APIRouter(prefix="/trips", tags=["trips"])


def _not_found(trip_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Trip with ID {trip_id} not found"
    )


def _bad_request(error: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


@router.post(
    "/plan",
    response_model=TripPlan,
    status_code=status.HTTP_201_CREATED,
    summary="Plan a new trip",
    description="Distribute candidate places over the trip days and build a timed itinerary for each day."
)
async def plan_trip(
    request: TripPlanRequest,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> TripPlan:
    """
    Plan a trip from candidate places.

    - Must-see places anchor the days first
    - Each day is routed and timed independently
    - Unused well-scored places become each day's replacement pool
    """
    try:
        return await coordinator.create_trip(
            origin=request.origin,
            start_date=request.start_date,
            end_date=request.end_date,
            places=[p.to_place(coordinator.settings.default_duration_minutes) for p in request.places],
            must_see_ids=set(request.must_see),
            start_time=request.start_time,
            avoid=request.avoid,
        )
    except ValueError as e:
        raise _bad_request(e)


@router.get(
    "/{trip_id}",
    response_model=TripPlan,
    summary="Get trip plan",
)
async def get_trip(
    trip_id: UUID,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> TripPlan:
    try:
        return await coordinator.get_trip(trip_id)
    except TripNotFound:
        raise _not_found(trip_id)


@router.post(
    "/{trip_id}/days/{day_index}/status",
    response_model=StatusResponse,
    summary="Report position and get schedule status",
    description="Advance item states from the live position and return lateness plus repair candidates."
)
async def report_status(
    trip_id: UUID,
    day_index: int,
    request: PositionRequest,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> StatusResponse:
    sample = PositionSample(**request.model_dump())
    try:
        result = await coordinator.tick(trip_id, day_index, sample)
    except TripNotFound:
        raise _not_found(trip_id)
    except ValueError as e:
        raise _bad_request(e)

    return StatusResponse(
        trip_id=trip_id,
        day_index=day_index,
        status=result.status,
        day=result.day,
        candidates=result.candidates,
    )


@router.get(
    "/{trip_id}/days/{day_index}/statuses",
    response_model=ItemStatusesResponse,
    summary="Get the stored item statuses of a day",
)
async def get_item_statuses(
    trip_id: UUID,
    day_index: int,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> ItemStatusesResponse:
    try:
        statuses = await coordinator.item_statuses(trip_id, day_index)
    except TripNotFound:
        raise _not_found(trip_id)
    except ValueError as e:
        raise _bad_request(e)
    return ItemStatusesResponse(trip_id=trip_id, day_index=day_index, statuses=statuses)


@router.post(
    "/{trip_id}/days/{day_index}/adjustments/apply",
    response_model=DayPlan,
    summary="Apply a repair candidate",
)
async def apply_adjustment(
    trip_id: UUID,
    day_index: int,
    request: ApplyAdjustmentRequest,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> DayPlan:
    """
    Apply one of the candidates returned by a status or fatigue call.

    Candidates computed against an older version of the day are rejected
    with 400.
    """
    try:
        return await coordinator.apply_adjustment(trip_id, day_index, request.candidate)
    except TripNotFound:
        raise _not_found(trip_id)
    except ValueError as e:
        raise _bad_request(e)


@router.post(
    "/{trip_id}/days/{day_index}/abandon",
    response_model=AbandonDayResponse,
    summary="Abandon the rest of a day",
    description="Cancel open items from `from_index` on and move them to later days where they fit."
)
async def abandon_day(
    trip_id: UUID,
    day_index: int,
    request: AbandonDayRequest,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> AbandonDayResponse:
    try:
        result = await coordinator.abandon_day(
            trip_id, day_index, from_index=request.from_index, reason=request.reason
        )
    except TripNotFound:
        raise _not_found(trip_id)
    except ValueError as e:
        raise _bad_request(e)

    return AbandonDayResponse(
        trip=result.plan,
        canceled_item_ids=result.canceled_item_ids,
        placements=[PlacementResponse(**vars(p)) for p in result.placements],
        postponed=result.postponed,
        summary=result.summary(),
    )


@router.post(
    "/{trip_id}/days/{day_index}/weather",
    response_model=WeatherCheckResponse,
    summary="Check the weather against the day's outdoor stops",
)
async def check_weather(
    trip_id: UUID,
    day_index: int,
    request: GeoPoint,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> WeatherCheckResponse:
    try:
        plan = await coordinator.get_trip(trip_id)
        assessment = await coordinator.check_weather(
            trip_id, day_index, request
        )
    except TripNotFound:
        raise _not_found(trip_id)
    except ValueError as e:
        raise _bad_request(e)

    items = plan.days[day_index].items
    return WeatherCheckResponse(
        severity=assessment.severity.value,
        condition=assessment.condition,
        at_risk_item_ids=[items[i].item_id for i in assessment.at_risk_indexes],
        recommend_abandon=assessment.recommend_abandon,
        suggestions=assessment.suggestions,
        change_eta_minutes=assessment.change_eta_minutes,
    )
