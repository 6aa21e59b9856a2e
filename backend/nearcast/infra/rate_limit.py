"""Simple Redis-backed rate limiting utilities."""

from __future__ import annotations

import math
import time
from typing import Optional

from fastapi import status

from nearcast.domain.errors import NearcastError
from nearcast.infra.redis import redis_client
from nearcast.settings import settings


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Return True when the operation is still within the allowed budget."""

	if limit <= 0:
		return False
	now = now or time.time()
	window = max(1, int(window_seconds))
	slot = int(math.floor(now / window))
	key = f"rl:{kind}:{actor_id}:{slot}:{window}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window_seconds)
		count, _ = await pipe.execute()
	return int(count) <= limit


class RateLimitExceeded(NearcastError):
	"""Raised when the rate limit has been hit."""

	status_code = status.HTTP_429_TOO_MANY_REQUESTS
	detail = "rate_limit"


async def enforce(kind: str, actor_id: str, *, limit: int, window_seconds: int = 60) -> None:
	"""Raise RateLimitExceeded once ``actor_id`` spends its ``kind`` budget.

	Budgets are multiplied in dev so local tooling can hammer endpoints.
	"""
	budget = limit * 10 if settings.is_dev() else limit
	if not await allow(kind, actor_id, limit=budget, window_seconds=window_seconds):
		raise RateLimitExceeded()
