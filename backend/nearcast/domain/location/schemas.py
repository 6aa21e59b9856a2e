"""Pydantic schemas for location endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from nearcast.domain.location.models import StoredLocation
from nearcast.domain.posts.schemas import ms_to_datetime
from nearcast.domain.proximity.geodesy import GEO_MAX_LATITUDE, GEO_MAX_LONGITUDE


class LocationUpdate(BaseModel):
	"""Payload emitted by the client when its position changes."""

	lat: float = Field(..., ge=-GEO_MAX_LATITUDE, le=GEO_MAX_LATITUDE)
	lng: float = Field(..., ge=-GEO_MAX_LONGITUDE, le=GEO_MAX_LONGITUDE)
	captured_at: int = Field(..., ge=0, description="Epoch milliseconds when the device took the fix")
	device_id: str = Field(..., min_length=1, max_length=128)
	accuracy_m: Optional[float] = Field(default=None, ge=0)


class LocationUpdateResult(BaseModel):
	applied: bool
	captured_at: int


class LocationOut(BaseModel):
	lat: float
	lng: float
	captured_at: datetime
	device_id: str
	accuracy_m: Optional[float] = None

	@classmethod
	def from_stored(cls, stored: StoredLocation) -> "LocationOut":
		return cls(
			lat=stored.lat,
			lng=stored.lng,
			captured_at=ms_to_datetime(stored.captured_at_ms),
			device_id=stored.device_id,
			accuracy_m=stored.accuracy_m,
		)
