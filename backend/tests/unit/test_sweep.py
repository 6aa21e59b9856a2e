import uuid

import pytest

from nearcast.domain.posts import store
from nearcast.domain.proximity import service
from nearcast.domain.proximity.geodesy import GeoPoint
from nearcast.maintenance import sweep
from nearcast.obs import metrics as obs_metrics
from nearcast.infra.redis import redis_client

T0 = 1_700_000_000_000
DAY_MS = 86_400_000
CENTER = GeoPoint(51.5072, -0.1276)


async def _create(now_ms):
	return await store.create_post(str(uuid.uuid4()), content="x", lat=CENTER.lat, lng=CENTER.lng, now_ms=now_ms)


def _runs(result):
	return obs_metrics.BACKGROUND_RUNS.labels(name=sweep.JOB_NAME, result=result)._value.get()


@pytest.mark.asyncio
async def test_sweep_waits_for_grace_period():
	post = await _create(T0)
	expiry = T0 + DAY_MS

	assert await sweep.sweep_expired(expiry + 299_000, grace_s=300, batch=10) == 0
	assert await redis_client.exists(store.post_key(post.id))

	assert await sweep.sweep_expired(expiry + 300_000, grace_s=300, batch=10) == 1
	assert not await redis_client.exists(store.post_key(post.id))


@pytest.mark.asyncio
async def test_sweep_drains_in_batches():
	for offset in range(7):
		await _create(T0 + offset)

	removed = await sweep.sweep_expired(T0 + 2 * DAY_MS, grace_s=0, batch=3)

	assert removed == 7
	assert await redis_client.zcard(store.EXPIRY_KEY) == 0


@pytest.mark.asyncio
async def test_sweep_never_touches_live_posts():
	live = await _create(T0 + DAY_MS)

	await sweep.sweep_expired(T0 + DAY_MS + 1, grace_s=0, batch=10)

	results = await service.query_nearby(CENTER, 1, "posts", caller_id="c", now_ms=T0 + DAY_MS + 1)
	assert [r.entity.id for r in results] == [live.id]


@pytest.mark.asyncio
async def test_failed_cycle_is_non_fatal_and_visibility_unchanged(monkeypatch):
	expired = await _create(T0)
	before = _runs("error")

	async def broken(cutoff_ms, *, batch):
		raise ConnectionError("redis went away")

	monkeypatch.setattr(store, "purge_expired", broken)

	assert await sweep.run_sweep_cycle(now_ms=T0 + 2 * DAY_MS) == 0
	assert _runs("error") == before + 1
	# Row is still present, yet queries keep hiding it.
	assert await redis_client.exists(store.post_key(expired.id))
	results = await service.query_nearby(CENTER, 1, "posts", caller_id="c", now_ms=T0 + 2 * DAY_MS)
	assert results == []


@pytest.mark.asyncio
async def test_cycle_records_success():
	await _create(T0)
	before = _runs("ok")

	assert await sweep.run_sweep_cycle(now_ms=T0 + 2 * DAY_MS) == 1
	assert _runs("ok") == before + 1


@pytest.mark.asyncio
async def test_scheduler_start_and_shutdown_are_idempotent():
	calls = []

	async def job():
		calls.append(1)

	scheduler = sweep.SweepScheduler(job)
	scheduler.start(interval_seconds=3600)
	scheduler.start(interval_seconds=3600)
	assert scheduler.running
	scheduler.shutdown()
	scheduler.shutdown()
	assert not scheduler.running
	assert calls == []
