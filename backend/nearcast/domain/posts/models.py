"""Domain models for ephemeral posts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from nearcast.domain.proximity.geodesy import GeoPoint


@dataclass(slots=True)
class Post:
	id: str
	owner_id: str
	content: str
	lat: float
	lng: float
	created_at_ms: int
	expires_at_ms: int
	image_url: Optional[str] = None

	@property
	def location(self) -> GeoPoint:
		return GeoPoint(self.lat, self.lng)

	def is_visible(self, now_ms: int) -> bool:
		# Visibility comes from expires_at alone, never from whether the row
		# has been purged yet.
		return self.expires_at_ms > now_ms

	def to_mapping(self) -> dict[str, object]:
		return {
			"id": self.id,
			"owner_id": self.owner_id,
			"content": self.content,
			"image_url": self.image_url or "",
			"lat": self.lat,
			"lng": self.lng,
			"created_at": self.created_at_ms,
			"expires_at": self.expires_at_ms,
		}

	@classmethod
	def from_mapping(cls, raw: Mapping[str, str]) -> "Post":
		return cls(
			id=str(raw["id"]),
			owner_id=str(raw["owner_id"]),
			content=str(raw["content"]),
			lat=float(raw["lat"]),
			lng=float(raw["lng"]),
			created_at_ms=int(raw["created_at"]),
			expires_at_ms=int(raw["expires_at"]),
			image_url=str(raw["image_url"]) if raw.get("image_url") else None,
		)
