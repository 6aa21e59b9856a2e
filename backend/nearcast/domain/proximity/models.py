"""Domain models used by the proximity service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union

from nearcast.domain.posts.models import Post
from nearcast.domain.proximity.geodesy import GeoPoint


ProximityKind = Literal["posts", "users"]


@dataclass(slots=True)
class NearbyUserEntity:
	"""A user's current position joined with the public profile fields."""

	id: str
	lat: float
	lng: float
	captured_at_ms: int
	username: str
	full_name: Optional[str] = None
	avatar_url: Optional[str] = None

	@property
	def location(self) -> GeoPoint:
		return GeoPoint(self.lat, self.lng)


@dataclass(slots=True)
class ProximityResult:
	entity: Union[Post, NearbyUserEntity]
	distance_km: float
