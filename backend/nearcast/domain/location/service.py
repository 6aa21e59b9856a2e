"""Current-position bookkeeping for users."""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional, Sequence, Tuple

from redis.exceptions import WatchError

from nearcast.domain.errors import NotFoundError, QueryFailed, ValidationError
from nearcast.domain.location.models import StoredLocation
from nearcast.domain.proximity.geodesy import is_valid_coordinate
from nearcast.infra.redis import redis_client
from nearcast.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

GEO_USERS_KEY = "geo:users"
_WATCH_ATTEMPTS = 5


def location_key(user_id: str) -> str:
	return f"user:location:{user_id}"


async def record_location(
	user_id: str,
	*,
	lat: float,
	lng: float,
	captured_at_ms: int,
	device_id: str,
	accuracy_m: Optional[float] = None,
	now_ms: Optional[int] = None,
) -> Tuple[bool, int]:
	"""Overwrite the user's position unless a fresher fix is already stored.

	Returns ``(applied, captured_at)`` where ``captured_at`` is the timestamp of
	the fix that is stored after the call.
	"""
	if not is_valid_coordinate(lat, lng):
		raise ValidationError("invalid_coordinates")
	now = now_ms if now_ms is not None else int(time.time() * 1000)
	key = location_key(user_id)
	for _ in range(_WATCH_ATTEMPTS):
		async with redis_client.pipeline(transaction=True) as pipe:
			try:
				await pipe.watch(key)
				stored_raw = await pipe.hget(key, "captured_at")
				if stored_raw is not None and int(stored_raw) > captured_at_ms:
					await pipe.unwatch()
					obs_metrics.inc_location_update("stale")
					logger.debug("location update discarded user=%s reason=stale", user_id)
					return False, int(stored_raw)
				pipe.multi()
				pipe.hset(
					key,
					mapping={
						"lat": lat,
						"lng": lng,
						"captured_at": captured_at_ms,
						"device_id": device_id,
						"accuracy_m": "" if accuracy_m is None else accuracy_m,
						"updated_at": now,
					},
				)
				pipe.geoadd(GEO_USERS_KEY, [lng, lat, user_id])
				await pipe.execute()
			except WatchError:
				continue
		obs_metrics.inc_location_update("applied")
		return True, captured_at_ms
	obs_metrics.inc_location_update("conflict")
	raise QueryFailed("location_update_conflict")


async def get_location(user_id: str) -> StoredLocation:
	raw = await redis_client.hgetall(location_key(user_id))
	if not raw:
		raise NotFoundError("location_not_found")
	return StoredLocation.from_mapping(user_id, raw)


async def load_locations(user_ids: Sequence[str]) -> Dict[str, StoredLocation]:
	ids = list(dict.fromkeys(user_ids))
	if not ids:
		return {}
	async with redis_client.pipeline(transaction=False) as pipe:
		for user_id in ids:
			pipe.hgetall(location_key(user_id))
		rows = await pipe.execute()
	locations: Dict[str, StoredLocation] = {}
	for user_id, raw in zip(ids, rows):
		if not raw:
			continue
		try:
			locations[user_id] = StoredLocation.from_mapping(user_id, raw)
		except (KeyError, ValueError):
			logger.warning("skipping malformed location row user=%s", user_id)
	return locations
