"""Great-circle helpers shared by the query service and the client SDK.

Both sides measure with the same haversine on the same sphere so a result the
server admits is never dropped (or kept) by the client on a rounding disagreement.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

EARTH_RADIUS_KM = 6371.0088
BUCKET_DECIMALS = 5
# Redis GEO indexes Web Mercator latitudes only; anything beyond is rejected by
# GEOADD/GEOSEARCH, so it is not a storable or queryable coordinate here.
GEO_MAX_LATITUDE = 85.05112878
GEO_MAX_LONGITUDE = 180.0


@dataclass(frozen=True)
class GeoPoint:
	lat: float
	lng: float


def is_valid_coordinate(lat: float, lng: float) -> bool:
	return (
		math.isfinite(lat)
		and math.isfinite(lng)
		and -GEO_MAX_LATITUDE <= lat <= GEO_MAX_LATITUDE
		and -GEO_MAX_LONGITUDE <= lng <= GEO_MAX_LONGITUDE
	)


def geodesic_distance_km(start: GeoPoint, end: GeoPoint) -> float:
	"""Return the great-circle distance between two points in kilometres."""

	phi1, phi2 = math.radians(start.lat), math.radians(end.lat)
	dphi = math.radians(end.lat - start.lat)
	dlambda = math.radians(end.lng - start.lng)
	a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
	return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def destination_point(origin: GeoPoint, bearing_deg: float, distance_km: float) -> GeoPoint:
	"""Point reached from ``origin`` travelling ``distance_km`` along ``bearing_deg``."""

	delta = distance_km / EARTH_RADIUS_KM
	theta = math.radians(bearing_deg)
	phi1 = math.radians(origin.lat)
	lambda1 = math.radians(origin.lng)
	phi2 = math.asin(math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta))
	lambda2 = lambda1 + math.atan2(
		math.sin(theta) * math.sin(delta) * math.cos(phi1),
		math.cos(delta) - math.sin(phi1) * math.sin(phi2),
	)
	lng = (math.degrees(lambda2) + 540.0) % 360.0 - 180.0
	return GeoPoint(lat=math.degrees(phi2), lng=lng)


def clamp_radius(radius_km: float, lower: float, upper: float) -> float:
	"""Clamp a caller supplied radius into ``[lower, upper]``.

	Negative, zero-width or non-finite input is rejected rather than clamped so a
	malformed request can never be widened into a valid one.
	"""

	if not math.isfinite(radius_km) or radius_km < 0:
		raise ValueError("radius_km must be a finite, non-negative number")
	return min(max(radius_km, lower), upper)


def center_bucket(lat: float, lng: float) -> Tuple[float, float]:
	"""Round coordinates to ~1 m so GPS jitter maps to the same key."""

	return round(lat, BUCKET_DECIMALS), round(lng, BUCKET_DECIMALS)


__all__ = [
	"EARTH_RADIUS_KM",
	"GeoPoint",
	"GEO_MAX_LATITUDE",
	"GEO_MAX_LONGITUDE",
	"is_valid_coordinate",
	"geodesic_distance_km",
	"destination_point",
	"clamp_radius",
	"center_bucket",
]
