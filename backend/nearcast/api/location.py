"""REST API surface for device position updates."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from nearcast.domain.location import service as location_service
from nearcast.domain.location.schemas import LocationOut, LocationUpdate, LocationUpdateResult
from nearcast.infra.auth import AuthenticatedUser, get_current_user
from nearcast.infra.rate_limit import enforce
from nearcast.settings import settings

router = APIRouter()


@router.post("/location", response_model=LocationUpdateResult)
async def update_location(
    payload: LocationUpdate,
    auth_user: AuthenticatedUser = Depends(get_current_user),
) -> LocationUpdateResult:
    await enforce("location", auth_user.id, limit=settings.rate_limit_location_per_minute)
    applied, captured_at = await location_service.record_location(
        auth_user.id,
        lat=payload.lat,
        lng=payload.lng,
        captured_at_ms=payload.captured_at,
        device_id=payload.device_id,
        accuracy_m=payload.accuracy_m,
    )
    return LocationUpdateResult(applied=applied, captured_at=captured_at)


@router.get("/location/self", response_model=LocationOut)
async def own_location(auth_user: AuthenticatedUser = Depends(get_current_user)) -> LocationOut:
    stored = await location_service.get_location(auth_user.id)
    return LocationOut.from_stored(stored)
