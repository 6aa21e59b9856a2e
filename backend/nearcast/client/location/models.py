"""Value types shared by the location backends and the tracker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from nearcast.domain.proximity.geodesy import GeoPoint, center_bucket


@dataclass(frozen=True, slots=True)
class Position:
    """A single device fix. ``captured_at`` is epoch seconds."""

    latitude: float
    longitude: float
    captured_at: float
    accuracy_m: Optional[float] = None

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    @property
    def captured_at_ms(self) -> int:
        return int(self.captured_at * 1000)

    @property
    def bucket(self) -> tuple[float, float]:
        return center_bucket(self.latitude, self.longitude)

    def to_mapping(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "captured_at": self.captured_at,
            "accuracy_m": self.accuracy_m,
        }

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Position":
        accuracy = raw.get("accuracy_m")
        return cls(
            latitude=float(raw["latitude"]),
            longitude=float(raw["longitude"]),
            captured_at=float(raw["captured_at"]),
            accuracy_m=float(accuracy) if accuracy is not None else None,
        )


@dataclass(frozen=True, slots=True)
class AcquisitionOptions:
    high_accuracy: bool = False
    maximum_age_s: float = 60.0
    timeout_s: float = 10.0

    def to_platform(self) -> dict[str, Any]:
        """Options in the shape both platform APIs expect (milliseconds)."""
        return {
            "enableHighAccuracy": self.high_accuracy,
            "maximumAge": int(self.maximum_age_s * 1000),
            "timeout": int(self.timeout_s * 1000),
        }


@dataclass(frozen=True, slots=True)
class TrackerOptions:
    high_accuracy: bool = False
    watch: bool = True
    maximum_age_s: float = 60.0
    timeout_s: float = 10.0
    # 0 disables automatic retries while the tracker is in an error state.
    retry_interval_s: float = 15.0

    def acquisition(self) -> AcquisitionOptions:
        return AcquisitionOptions(
            high_accuracy=self.high_accuracy,
            maximum_age_s=self.maximum_age_s,
            timeout_s=self.timeout_s,
        )


__all__ = ["Position", "AcquisitionOptions", "TrackerOptions"]
