import uuid

import pytest

from nearcast.domain.errors import ValidationError
from nearcast.domain.location.service import record_location
from nearcast.domain.posts import store
from nearcast.domain.proximity import service
from nearcast.domain.proximity.geodesy import GeoPoint, destination_point, geodesic_distance_km
from nearcast.domain.proximity.models import NearbyUserEntity
from nearcast.infra.redis import redis_client

T0 = 1_700_000_000_000
DAY_MS = 86_400_000
CENTER = GeoPoint(40.7128, -74.0060)


async def _post_at(distance_km, *, bearing=90.0, now_ms=T0, owner=None):
	point = destination_point(CENTER, bearing, distance_km)
	return await store.create_post(
		owner or str(uuid.uuid4()),
		content=f"{distance_km} km out",
		lat=point.lat,
		lng=point.lng,
		now_ms=now_ms,
	)


def _profiles(names):
	async def _load(user_ids):
		return {uid: {"username": names[uid], "full_name": None, "avatar_url": None} for uid in user_ids if uid in names}

	return _load


@pytest.mark.asyncio
async def test_radius_boundary_includes_inside_excludes_outside():
	inside = await _post_at(9.99)
	outside = await _post_at(10.01, bearing=270.0)

	results = await service.query_nearby(CENTER, 10, "posts", caller_id="caller", now_ms=T0 + 1)

	ids = [result.entity.id for result in results]
	assert inside.id in ids
	assert outside.id not in ids
	for result in results:
		assert result.distance_km <= 10
		assert result.distance_km == pytest.approx(geodesic_distance_km(CENTER, result.entity.location))


@pytest.mark.asyncio
async def test_expiry_window_independent_of_sweep():
	post = await _post_at(1.0)

	just_before = await service.query_nearby(CENTER, 5, "posts", caller_id="c", now_ms=T0 + DAY_MS - 60_000)
	assert [r.entity.id for r in just_before] == [post.id]

	# The row still exists (no sweep ran) but must not be returned.
	just_after = await service.query_nearby(CENTER, 5, "posts", caller_id="c", now_ms=T0 + DAY_MS + 60_000)
	assert just_after == []
	assert await redis_client.exists(store.post_key(post.id))

	at_boundary = await service.query_nearby(CENTER, 5, "posts", caller_id="c", now_ms=T0 + DAY_MS)
	assert at_boundary == []


@pytest.mark.asyncio
async def test_posts_newest_first():
	older = await _post_at(2.0, now_ms=T0)
	newer = await _post_at(3.0, now_ms=T0 + 1_000)
	newest = await _post_at(1.0, now_ms=T0 + 2_000)

	results = await service.query_nearby(CENTER, 10, "posts", caller_id="c", now_ms=T0 + 3_000)

	assert [r.entity.id for r in results] == [newest.id, newer.id, older.id]


@pytest.mark.asyncio
async def test_radius_is_clamped_to_configured_maximum():
	far = await _post_at(150.0)
	within_max = await _post_at(99.0, bearing=0.0)

	results = await service.query_nearby(CENTER, 5000, "posts", caller_id="c", now_ms=T0 + 1)

	ids = {r.entity.id for r in results}
	assert within_max.id in ids
	assert far.id not in ids
	assert service.effective_radius("posts", 5000) == 100
	assert service.effective_radius("users", 5000) == 60
	assert service.effective_radius("posts", 0.1) == 1


@pytest.mark.asyncio
async def test_query_is_idempotent():
	for distance in (0.5, 2.5, 7.5):
		await _post_at(distance)

	first = await service.query_nearby(CENTER, 10, "posts", caller_id="c", now_ms=T0 + 1)
	second = await service.query_nearby(CENTER, 10, "posts", caller_id="c", now_ms=T0 + 1)

	assert [(r.entity.id, round(r.distance_km, 9)) for r in first] == [
		(r.entity.id, round(r.distance_km, 9)) for r in second
	]


@pytest.mark.asyncio
async def test_dangling_geo_member_is_ignored():
	await redis_client.geoadd(store.GEO_POSTS_KEY, [CENTER.lng, CENTER.lat, str(uuid.uuid4())])
	assert await service.query_nearby(CENTER, 5, "posts", caller_id="c", now_ms=T0) == []


@pytest.mark.asyncio
async def test_nearby_users_excludes_caller_and_orders_by_distance(monkeypatch):
	caller, near, far, outside = (str(uuid.uuid4()) for _ in range(4))
	placements = {caller: 0.0, near: 1.0, far: 4.0, outside: 12.0}
	for user_id, distance in placements.items():
		point = destination_point(CENTER, 45.0, distance)
		await record_location(user_id, lat=point.lat, lng=point.lng, captured_at_ms=T0, device_id="phone")
	names = {caller: "me", near: "nina", far: "farid", outside: "otto"}
	monkeypatch.setattr(service, "load_profiles", _profiles(names))

	results = await service.query_nearby(CENTER, 10, "users", caller_id=caller)

	assert [r.entity.id for r in results] == [near, far]
	assert all(isinstance(r.entity, NearbyUserEntity) for r in results)
	assert results[0].entity.username == "nina"


@pytest.mark.asyncio
async def test_nearby_users_search_only_narrows(monkeypatch):
	caller, ann, anna, bob = (str(uuid.uuid4()) for _ in range(4))
	for user_id, distance in ((ann, 1.0), (anna, 2.0), (bob, 3.0)):
		point = destination_point(CENTER, 180.0, distance)
		await record_location(user_id, lat=point.lat, lng=point.lng, captured_at_ms=T0, device_id="d")
	names = {ann: "Ann", anna: "JoANNa", bob: "bob"}
	monkeypatch.setattr(service, "load_profiles", _profiles(names))

	everyone = await service.query_nearby(CENTER, 10, "users", caller_id=caller)
	filtered = await service.query_nearby(CENTER, 10, "users", caller_id=caller, search="  ann ")

	assert [r.entity.id for r in filtered] == [ann, anna]
	assert {r.entity.id for r in filtered} <= {r.entity.id for r in everyone}
	narrow_radius = await service.query_nearby(CENTER, 1.5, "users", caller_id=caller, search="ann")
	assert [r.entity.id for r in narrow_radius] == [ann]


@pytest.mark.asyncio
async def test_nearby_users_skips_users_without_profile(monkeypatch):
	ghost = str(uuid.uuid4())
	await record_location(ghost, lat=CENTER.lat, lng=CENTER.lng, captured_at_ms=T0, device_id="d")
	monkeypatch.setattr(service, "load_profiles", _profiles({}))

	assert await service.query_nearby(CENTER, 5, "users", caller_id="someone") == []


@pytest.mark.asyncio
async def test_friend_posts_use_friend_graph(monkeypatch):
	me, friend, stranger = (str(uuid.uuid4()) for _ in range(3))
	friend_post = await _post_at(500.0, owner=friend)
	await _post_at(1.0, owner=stranger)

	async def fake_friends(user_id):
		assert user_id == me
		return [friend]

	monkeypatch.setattr(service, "load_friend_ids", fake_friends)

	posts = await service.friend_posts(me, now_ms=T0 + 1)
	assert [post.id for post in posts] == [friend_post.id]
	assert await service.friend_posts(me, now_ms=T0 + DAY_MS) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", ["posts", "users"])
async def test_center_outside_index_band_is_rejected(kind):
	with pytest.raises(ValidationError):
		await service.query_nearby(GeoPoint(86.0, 0.0), 5, kind, caller_id="c", now_ms=T0)
