"""Server-side view of a user's current position."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from nearcast.domain.proximity.geodesy import GeoPoint


@dataclass(slots=True)
class StoredLocation:
	"""Latest fix for a user. Overwritten in place, never historized."""

	user_id: str
	lat: float
	lng: float
	captured_at_ms: int
	device_id: str
	updated_at_ms: int
	accuracy_m: Optional[float] = None

	@property
	def location(self) -> GeoPoint:
		return GeoPoint(self.lat, self.lng)

	@classmethod
	def from_mapping(cls, user_id: str, raw: Mapping[str, str]) -> "StoredLocation":
		accuracy = raw.get("accuracy_m")
		return cls(
			user_id=user_id,
			lat=float(raw["lat"]),
			lng=float(raw["lng"]),
			captured_at_ms=int(raw["captured_at"]),
			device_id=str(raw.get("device_id") or ""),
			updated_at_ms=int(raw.get("updated_at") or raw["captured_at"]),
			accuracy_m=float(accuracy) if accuracy not in (None, "") else None,
		)
