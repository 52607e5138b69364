"""
Biometric profile endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from itinerary_engine.api.dependencies import get_coordinator
from itinerary_engine.application.replanning import ReplanningCoordinator
from itinerary_engine.domain.models import BiometricProfile


router = APIRouter(prefix="/profile", tags=["profile"])


@router.put("", response_model=BiometricProfile, summary="Store the traveler's biometric profile")
async def put_profile(
    profile: BiometricProfile,
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> BiometricProfile:
    return await coordinator.set_profile(profile)


@router.get("", response_model=BiometricProfile, summary="Get the traveler's biometric profile")
async def get_profile(
    coordinator: ReplanningCoordinator = Depends(get_coordinator),
) -> BiometricProfile:
    profile = await coordinator.get_profile()
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Biometric profile not set"
        )
    return profile
