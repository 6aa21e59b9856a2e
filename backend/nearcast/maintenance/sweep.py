"""Physical removal of expired posts.

Visibility never depends on this module: readers compare ``expires_at`` to the
clock themselves. The sweep only reclaims storage, so a skipped or failed cycle
is harmless.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from nearcast.domain.posts import store as post_store
from nearcast.obs import metrics as obs_metrics
from nearcast.settings import settings

logger = logging.getLogger(__name__)

JOB_NAME = "post-sweep"


async def sweep_expired(now_ms: int, grace_s: int, batch: int) -> int:
    """Remove every row with ``expires_at <= now_ms - grace_s``; return the count."""
    cutoff = now_ms - max(0, int(grace_s)) * 1000
    size = max(1, int(batch))
    removed = 0
    while True:
        count = await post_store.purge_expired(cutoff, batch=size)
        removed += count
        if count < size:
            return removed


async def run_sweep_cycle(now_ms: Optional[int] = None) -> int:
    started = time.perf_counter()
    now = now_ms if now_ms is not None else int(time.time() * 1000)
    try:
        removed = await sweep_expired(now, settings.sweep_grace_seconds, settings.sweep_batch_size)
    except Exception:
        obs_metrics.record_job_run(JOB_NAME, result="error", duration_seconds=time.perf_counter() - started)
        logger.exception("post sweep failed")
        return 0
    if removed:
        obs_metrics.inc_post_deleted("expired", removed)
    obs_metrics.record_job_run(JOB_NAME, result="ok", duration_seconds=time.perf_counter() - started)
    logger.info("post sweep removed=%s", removed)
    return removed


class SweepScheduler:
    """Minimal wrapper around AsyncIOScheduler for the post sweep."""

    def __init__(self, job: Callable[[], object] = run_sweep_cycle) -> None:
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._job = job
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def start(self, *, interval_seconds: Optional[int] = None) -> None:
        if self._started:
            return
        seconds = interval_seconds or settings.sweep_interval_seconds
        self._scheduler.add_job(
            self._job,
            trigger=IntervalTrigger(seconds=max(1, int(seconds))),
            id=JOB_NAME,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        self._started = True

    def shutdown(self) -> None:
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False


__all__ = ["sweep_expired", "run_sweep_cycle", "SweepScheduler"]
