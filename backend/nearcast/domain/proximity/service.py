"""Radius-bounded queries over posts and user positions.

Every query runs in two phases: Redis GEOSEARCH prunes candidates cheaply with a
slightly widened radius, then the haversine distance decides. Only the second
phase is authoritative, so boundary false positives from the index never leak.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Tuple

from nearcast.domain.errors import ValidationError
from nearcast.domain.location.service import GEO_USERS_KEY, load_locations
from nearcast.domain.posts import store as post_store
from nearcast.domain.posts.models import Post
from nearcast.domain.proximity.geodesy import GeoPoint, clamp_radius, geodesic_distance_km, is_valid_coordinate
from nearcast.domain.proximity.models import NearbyUserEntity, ProximityKind, ProximityResult
from nearcast.domain.proximity.social_graph import load_friend_ids, load_profiles
from nearcast.infra.redis import redis_client
from nearcast.obs import metrics as obs_metrics
from nearcast.settings import settings

logger = logging.getLogger(__name__)

Candidate = Tuple[str, float]


def radius_bounds(kind: ProximityKind) -> Tuple[float, float]:
	if kind == "posts":
		return settings.posts_min_radius_km, settings.posts_max_radius_km
	return settings.users_min_radius_km, settings.users_max_radius_km


def effective_radius(kind: ProximityKind, radius_km: float) -> float:
	lower, upper = radius_bounds(kind)
	return clamp_radius(radius_km, lower, upper)


async def _prefilter(key: str, center: GeoPoint, radius_km: float) -> List[Candidate]:
	if not is_valid_coordinate(center.lat, center.lng):
		raise ValidationError("invalid_coordinates")
	search_radius = radius_km * max(1.0, settings.proximity_prefilter_slack)
	results = await redis_client.geosearch(
		key,
		longitude=center.lng,
		latitude=center.lat,
		radius=search_radius,
		unit="km",
		withdist=True,
	)
	return [(str(member), float(distance)) for member, distance in results]


async def query_nearby(
	center: GeoPoint,
	radius_km: float,
	kind: ProximityKind,
	*,
	caller_id: str,
	search: Optional[str] = None,
	now_ms: Optional[int] = None,
) -> List[ProximityResult]:
	"""Return live entities of ``kind`` within ``radius_km`` of ``center``."""
	if kind == "posts":
		return await nearby_posts(center, radius_km, now_ms=now_ms)
	return await nearby_users(center, radius_km, caller_id=caller_id, search=search)


async def nearby_posts(
	center: GeoPoint,
	radius_km: float,
	*,
	now_ms: Optional[int] = None,
) -> List[ProximityResult]:
	radius = effective_radius("posts", radius_km)
	now = now_ms if now_ms is not None else int(time.time() * 1000)
	candidates = await _prefilter(post_store.GEO_POSTS_KEY, center, radius)
	rows = await post_store.load_posts([post_id for post_id, _ in candidates])

	results: List[ProximityResult] = []
	rejected = 0
	for post_id, _ in candidates:
		post = rows.get(post_id)
		if post is None:
			continue
		# Expiry and distance are judged together; an expired row that is still
		# waiting for the sweep never gets a distance computed.
		if not post.is_visible(now):
			if logger.isEnabledFor(logging.DEBUG):
				logger.debug("nearby posts skip id=%s reason=expired", post_id)
			continue
		distance = geodesic_distance_km(center, post.location)
		if distance > radius:
			rejected += 1
			continue
		results.append(ProximityResult(entity=post, distance_km=distance))

	results.sort(key=lambda result: (-result.entity.created_at_ms, result.entity.id))
	results = results[: settings.proximity_max_results]
	_record("posts", candidates=len(candidates), rejected=rejected, returned=len(results))
	return results


async def nearby_users(
	center: GeoPoint,
	radius_km: float,
	*,
	caller_id: str,
	search: Optional[str] = None,
) -> List[ProximityResult]:
	radius = effective_radius("users", radius_km)
	term = (search or "").strip().casefold() or None
	candidates = [
		(user_id, distance)
		for user_id, distance in await _prefilter(GEO_USERS_KEY, center, radius)
		if user_id != str(caller_id)
	]
	locations = await load_locations([user_id for user_id, _ in candidates])

	in_range: List[Tuple[str, float]] = []
	rejected = 0
	for user_id, _ in candidates:
		stored = locations.get(user_id)
		if stored is None:
			continue
		distance = geodesic_distance_km(center, stored.location)
		if distance > radius:
			rejected += 1
			continue
		in_range.append((user_id, distance))

	profiles = await load_profiles([user_id for user_id, _ in in_range])
	results: List[ProximityResult] = []
	for user_id, distance in in_range:
		profile = profiles.get(user_id)
		if not profile:
			continue
		username = str(profile.get("username") or "")
		if term is not None and term not in username.casefold():
			continue
		stored = locations[user_id]
		entity = NearbyUserEntity(
			id=user_id,
			lat=stored.lat,
			lng=stored.lng,
			captured_at_ms=stored.captured_at_ms,
			username=username,
			full_name=profile.get("full_name") or None,  # type: ignore[arg-type]
			avatar_url=profile.get("avatar_url") or None,  # type: ignore[arg-type]
		)
		results.append(ProximityResult(entity=entity, distance_km=distance))

	results.sort(key=lambda result: (result.distance_km, result.entity.id))
	results = results[: settings.proximity_max_results]
	_record("users", candidates=len(candidates), rejected=rejected, returned=len(results))
	return results


async def friend_posts(user_id: str, *, now_ms: Optional[int] = None) -> List[Post]:
	"""Visible posts of the caller's accepted friends, newest first."""
	friend_ids = await load_friend_ids(user_id)
	posts = await post_store.posts_by_owners(friend_ids, now_ms=now_ms)
	obs_metrics.inc_proximity_query("friends")
	obs_metrics.observe_proximity_results("friends", len(posts))
	return posts


def _record(kind: str, *, candidates: int, rejected: int, returned: int) -> None:
	obs_metrics.inc_proximity_query(kind)
	obs_metrics.observe_proximity_results(kind, returned)
	if rejected:
		obs_metrics.inc_boundary_rejects(kind, rejected)
	logger.info(
		"nearby query kind=%s candidates=%s boundary_rejects=%s returned=%s",
		kind,
		candidates,
		rejected,
		returned,
	)


__all__ = [
	"radius_bounds",
	"effective_radius",
	"query_nearby",
	"nearby_posts",
	"nearby_users",
	"friend_posts",
]
