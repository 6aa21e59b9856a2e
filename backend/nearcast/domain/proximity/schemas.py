"""Pydantic schemas for proximity endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from nearcast.domain.posts.schemas import ms_to_datetime
from nearcast.domain.proximity.models import NearbyUserEntity


class NearbyUser(BaseModel):
	"""Lite profile returned to the client when a user is nearby."""

	user_id: UUID
	username: str
	full_name: Optional[str] = None
	avatar_url: Optional[str] = None
	lat: float
	lng: float
	located_at: datetime
	distance_km: float = Field(..., ge=0)

	@classmethod
	def from_entity(cls, entity: NearbyUserEntity, distance_km: float) -> "NearbyUser":
		return cls(
			user_id=UUID(entity.id),
			username=entity.username,
			full_name=entity.full_name,
			avatar_url=entity.avatar_url,
			lat=entity.lat,
			lng=entity.lng,
			located_at=ms_to_datetime(entity.captured_at_ms),
			distance_km=distance_km,
		)


class NearbyUsersResponse(BaseModel):
	items: list[NearbyUser]
	radius_km: float
