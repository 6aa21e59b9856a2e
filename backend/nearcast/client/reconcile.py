"""Client-side result reconciliation: radius safety net and result cache."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, List, Optional, Sequence, Tuple, TypeVar

from nearcast.domain.proximity.geodesy import GeoPoint, geodesic_distance_km

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CACHE_RETENTION_S = 300.0


def item_point(item: object) -> GeoPoint:
    """Location of a post or nearby user returned by the API."""
    return GeoPoint(float(getattr(item, "lat")), float(getattr(item, "lng")))


def enforce_radius(
    items: Sequence[T],
    center: GeoPoint,
    radius_km: float,
    *,
    locate: Callable[[T], GeoPoint] = item_point,
) -> List[T]:
    """Drop every item farther than ``radius_km`` from ``center``.

    Uses the same distance formula as the server, so on agreement it is a no-op.
    Idempotent: applying it twice yields the same list. Order is preserved.
    """
    kept = [item for item in items if geodesic_distance_km(center, locate(item)) <= radius_km]
    dropped = len(items) - len(kept)
    if dropped:
        logger.warning("safety net dropped %s result(s) beyond radius_km=%s", dropped, radius_km)
    return kept


@dataclass(slots=True)
class _Entry(Generic[T]):
    items: List[T]
    stored_at: float


class ResultCache(Generic[T]):
    """Last successful result set per query key, kept for ``retention_s``."""

    def __init__(
        self,
        retention_s: float = DEFAULT_CACHE_RETENTION_S,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.retention_s = retention_s
        self._clock = clock
        self._entries: Dict[Hashable, _Entry[T]] = {}

    def get(self, key: Hashable) -> Optional[List[T]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self.retention_s:
            del self._entries[key]
            return None
        return list(entry.items)

    def put(self, key: Hashable, items: Sequence[T]) -> None:
        self._prune()
        self._entries[key] = _Entry(items=list(items), stored_at=self._clock())

    def _prune(self) -> None:
        now = self._clock()
        for key in [key for key, entry in self._entries.items() if now - entry.stored_at > self.retention_s]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


FeedKey = Tuple[Hashable, ...]


__all__ = ["enforce_radius", "item_point", "ResultCache", "FeedKey", "DEFAULT_CACHE_RETENTION_S"]
