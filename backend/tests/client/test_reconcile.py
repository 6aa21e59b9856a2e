from helpers import HOME, nearby_post
from nearcast.client.reconcile import ResultCache, enforce_radius


def test_safety_net_drops_items_beyond_radius():
	inside = nearby_post(9.99)
	outside = nearby_post(10.01, bearing=200.0)
	way_out = nearby_post(40.0)

	kept = enforce_radius([inside, outside, way_out], HOME, 10)

	assert kept == [inside]


def test_safety_net_is_idempotent_and_order_preserving():
	items = [nearby_post(distance) for distance in (3.0, 1.0, 12.0, 2.0)]

	once = enforce_radius(items, HOME, 5)
	twice = enforce_radius(once, HOME, 5)

	assert once == twice
	assert [item.content for item in once] == ["3.0 km", "1.0 km", "2.0 km"]


class FakeClock:
	def __init__(self):
		self.now = 0.0

	def __call__(self):
		return self.now


def test_cache_expires_after_retention():
	clock = FakeClock()
	cache = ResultCache(retention_s=300, clock=clock)
	cache.put(("nearby", (1.0, 2.0), 10), ["a", "b"])

	clock.now = 299
	assert cache.get(("nearby", (1.0, 2.0), 10)) == ["a", "b"]
	assert cache.get(("nearby", (1.0, 2.0), 20)) is None

	clock.now = 301
	assert cache.get(("nearby", (1.0, 2.0), 10)) is None
	assert len(cache) == 0


def test_cache_returns_copies_and_prunes_on_put():
	clock = FakeClock()
	cache = ResultCache(retention_s=10, clock=clock)
	cache.put("old", [1])
	got = cache.get("old")
	got.append(2)
	assert cache.get("old") == [1]

	clock.now = 11
	cache.put("new", [3])
	assert len(cache) == 1
