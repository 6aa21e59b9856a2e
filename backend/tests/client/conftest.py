import pytest
import pytest_asyncio

from helpers import FakeApi
from nearcast.client.location.models import TrackerOptions
from nearcast.client.location.tracker import LocationTracker


@pytest.fixture
def fake_api():
	return FakeApi()


@pytest_asyncio.fixture
async def make_tracker():
	trackers = []

	def _make(backend, **options):
		defaults = {"watch": False, "retry_interval_s": 0}
		defaults.update(options)
		tracker = LocationTracker(backend, options=TrackerOptions(**defaults))
		trackers.append(tracker)
		return tracker

	yield _make
	for tracker in trackers:
		await tracker.close()
