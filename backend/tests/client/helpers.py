"""Fakes and builders shared by the client SDK tests."""

import asyncio
import time
import uuid
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Optional

from nearcast.client.location.models import Position
from nearcast.domain.location.schemas import LocationUpdateResult
from nearcast.domain.posts.schemas import FeedResponse, NearbyPost, NearbyPostsResponse, PostCreated, PostOut
from nearcast.domain.proximity.geodesy import GeoPoint, destination_point, geodesic_distance_km
from nearcast.domain.proximity.schemas import NearbyUser, NearbyUsersResponse

HOME = GeoPoint(52.52, 13.405)


def fix(lat=HOME.lat, lng=HOME.lng, captured_at=None) -> Position:
	return Position(latitude=lat, longitude=lng, captured_at=captured_at if captured_at is not None else time.time())


def nearby_post(distance_km: float, *, bearing: float = 90.0, center: GeoPoint = HOME) -> NearbyPost:
	point = destination_point(center, bearing, distance_km)
	now = datetime.now(timezone.utc)
	return NearbyPost(
		id=uuid.uuid4(),
		owner_id=uuid.uuid4(),
		content=f"{distance_km} km",
		lat=point.lat,
		lng=point.lng,
		created_at=now,
		expires_at=now + timedelta(days=1),
		distance_km=geodesic_distance_km(center, point),
	)


def friend_post() -> PostOut:
	now = datetime.now(timezone.utc)
	return PostOut(
		id=uuid.uuid4(),
		owner_id=uuid.uuid4(),
		content="friend",
		lat=0.0,
		lng=0.0,
		created_at=now,
		expires_at=now + timedelta(days=1),
	)


def nearby_user(distance_km: float, *, name: str = "user", center: GeoPoint = HOME) -> NearbyUser:
	point = destination_point(center, 0.0, distance_km)
	return NearbyUser(
		user_id=uuid.uuid4(),
		username=name,
		lat=point.lat,
		lng=point.lng,
		located_at=datetime.now(timezone.utc),
		distance_km=distance_km,
	)


class FakeWatch:
	def __init__(self, on_position, on_error):
		self.on_position = on_position
		self.on_error = on_error
		self.closed = False

	def push(self, position):
		if not self.closed:
			self.on_position(position)

	def fail(self, error):
		if not self.closed:
			self.on_error(error)

	async def close(self):
		self.closed = True


class FakeBackend:
	"""Scripted backend: each acquisition pops the next fix or exception."""

	name = "fake"

	def __init__(self, *results, default: Optional[Position] = None):
		self.results = deque(results)
		self.default = default
		self.requests = []
		self.watches = []
		self.watch_error: Optional[Exception] = None

	async def current_position(self, options):
		self.requests.append(options)
		if self.results:
			result = self.results.popleft()
		else:
			result = self.default
		if isinstance(result, BaseException):
			raise result
		if result is None:
			raise AssertionError("no scripted fix")
		return result

	async def watch(self, options, on_position, on_error):
		if self.watch_error is not None:
			raise self.watch_error
		handle = FakeWatch(on_position, on_error)
		self.watches.append(handle)
		return handle


class FakeApi:
	def __init__(self):
		self.nearby_items = []
		self.friend_items = []
		self.user_items = []
		self.nearby_calls = []
		self.friend_calls = 0
		self.user_calls = []
		self.created = []
		self.location_updates = []
		self.gates = deque()
		self.nearby_started = asyncio.Event()
		self.fail_next: Optional[Exception] = None
		self.fail_location: Optional[Exception] = None

	async def _maybe_block_and_fail(self):
		if self.gates:
			gate = self.gates.popleft()
			if gate is not None:
				await gate.wait()
		if self.fail_next is not None:
			error, self.fail_next = self.fail_next, None
			raise error

	async def nearby_posts(self, *, lat, lng, radius_km):
		self.nearby_calls.append((lat, lng, radius_km))
		self.nearby_started.set()
		items = list(self.nearby_items)
		await self._maybe_block_and_fail()
		return NearbyPostsResponse(items=items, radius_km=radius_km)

	async def friend_posts(self):
		self.friend_calls += 1
		await self._maybe_block_and_fail()
		return FeedResponse(items=list(self.friend_items))

	async def nearby_users(self, *, lat, lng, radius_km, search=None):
		self.user_calls.append((lat, lng, radius_km, search))
		await self._maybe_block_and_fail()
		return NearbyUsersResponse(items=list(self.user_items), radius_km=radius_km)

	async def create_post(self, *, content, lat, lng, image_url=None):
		self.created.append((content, lat, lng, image_url))
		now = datetime.now(timezone.utc)
		return PostCreated(id=uuid.uuid4(), created_at=now, expires_at=now + timedelta(days=1))

	async def update_location(self, *, lat, lng, captured_at_ms, device_id, accuracy_m=None):
		self.location_updates.append((lat, lng, captured_at_ms, device_id))
		if self.fail_location is not None:
			error, self.fail_location = self.fail_location, None
			raise error
		return LocationUpdateResult(applied=True, captured_at=captured_at_ms)


