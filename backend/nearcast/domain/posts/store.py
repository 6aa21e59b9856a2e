"""Ephemeral post storage on Redis.

Layout:
- ``post:{id}`` hash holds the row
- ``geo:posts`` GEO set indexes every row by location
- ``posts:expiry`` sorted set (score = expires_at ms) drives the sweep
- ``posts:owner:{owner_id}`` sorted set (score = created_at ms) drives owner lookups

Every write touches all four structures inside one MULTI/EXEC so a reader never
sees a half-indexed row.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Dict, Iterable, List, Optional, Sequence

from redis.exceptions import WatchError

from nearcast.domain.errors import NotFoundError, UnauthorizedError, ValidationError
from nearcast.domain.posts.models import Post
from nearcast.domain.proximity.geodesy import is_valid_coordinate
from nearcast.infra.redis import redis_client
from nearcast.obs import metrics as obs_metrics
from nearcast.settings import settings

logger = logging.getLogger(__name__)

GEO_POSTS_KEY = "geo:posts"
EXPIRY_KEY = "posts:expiry"
_WATCH_ATTEMPTS = 5


def post_key(post_id: str) -> str:
	return f"post:{post_id}"


def owner_key(owner_id: str) -> str:
	return f"posts:owner:{owner_id}"


def current_ms() -> int:
	return int(time.time() * 1000)


async def create_post(
	owner_id: str,
	*,
	content: str,
	lat: float,
	lng: float,
	image_url: Optional[str] = None,
	now_ms: Optional[int] = None,
) -> Post:
	"""Persist a new post, stamping ``created_at`` and ``expires_at``."""
	# Checked before MULTI: Redis would still commit the other queued writes
	# if GEOADD rejected the point inside the transaction.
	if not is_valid_coordinate(lat, lng):
		raise ValidationError("invalid_coordinates")
	created = now_ms if now_ms is not None else current_ms()
	post = Post(
		id=str(uuid.uuid4()),
		owner_id=str(owner_id),
		content=content,
		lat=float(lat),
		lng=float(lng),
		created_at_ms=created,
		expires_at_ms=created + int(settings.post_ttl_seconds) * 1000,
		image_url=image_url,
	)
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.hset(post_key(post.id), mapping=post.to_mapping())
		pipe.geoadd(GEO_POSTS_KEY, [post.lng, post.lat, post.id])
		pipe.zadd(EXPIRY_KEY, {post.id: post.expires_at_ms})
		pipe.zadd(owner_key(post.owner_id), {post.id: post.created_at_ms})
		await pipe.execute()
	obs_metrics.inc_post_created()
	logger.info("post created id=%s owner=%s", post.id, post.owner_id)
	return post


async def load_posts(post_ids: Sequence[str]) -> Dict[str, Post]:
	"""Fetch rows for ``post_ids``; ids whose row is gone are simply absent."""
	ids = list(dict.fromkeys(post_ids))
	if not ids:
		return {}
	async with redis_client.pipeline(transaction=False) as pipe:
		for post_id in ids:
			pipe.hgetall(post_key(post_id))
		rows = await pipe.execute()
	posts: Dict[str, Post] = {}
	for post_id, raw in zip(ids, rows):
		if not raw:
			continue
		try:
			posts[post_id] = Post.from_mapping(raw)
		except (KeyError, ValueError):
			logger.warning("skipping malformed post row id=%s", post_id)
	return posts


async def get_post(post_id: str, *, now_ms: Optional[int] = None) -> Post:
	now = now_ms if now_ms is not None else current_ms()
	posts = await load_posts([post_id])
	post = posts.get(post_id)
	if post is None or not post.is_visible(now):
		raise NotFoundError()
	return post


async def delete_post(post_id: str, owner_id: str, *, now_ms: Optional[int] = None) -> None:
	"""Delete a post before its natural expiry. Only the owner may do so."""
	now = now_ms if now_ms is not None else current_ms()
	key = post_key(post_id)
	for _ in range(_WATCH_ATTEMPTS):
		async with redis_client.pipeline(transaction=True) as pipe:
			try:
				await pipe.watch(key)
				raw = await pipe.hgetall(key)
				if not raw:
					raise NotFoundError()
				post = Post.from_mapping(raw)
				if not post.is_visible(now):
					raise NotFoundError()
				if post.owner_id != str(owner_id):
					raise UnauthorizedError()
				pipe.multi()
				_unlink(pipe, post)
				await pipe.execute()
			except WatchError:
				continue
		obs_metrics.inc_post_deleted("owner")
		logger.info("post deleted id=%s owner=%s", post_id, owner_id)
		return
	raise NotFoundError("concurrent_modification")


async def posts_by_owners(
	owner_ids: Iterable[str],
	*,
	now_ms: Optional[int] = None,
	limit: Optional[int] = None,
) -> List[Post]:
	"""Visible posts authored by any of ``owner_ids``, newest first."""
	owners = list(dict.fromkeys(str(owner) for owner in owner_ids))
	if not owners:
		return []
	now = now_ms if now_ms is not None else current_ms()
	cap = limit or settings.proximity_max_results
	async with redis_client.pipeline(transaction=False) as pipe:
		for owner in owners:
			pipe.zrevrange(owner_key(owner), 0, cap - 1)
		id_lists = await pipe.execute()
	post_ids = [post_id for ids in id_lists for post_id in ids]
	rows = await load_posts(post_ids)
	visible = [post for post in rows.values() if post.is_visible(now)]
	visible.sort(key=lambda post: (-post.created_at_ms, post.id))
	return visible[:cap]


async def purge_expired(cutoff_ms: int, *, batch: int) -> int:
	"""Physically remove rows whose ``expires_at`` is at or before ``cutoff_ms``."""
	doomed = await redis_client.zrangebyscore(EXPIRY_KEY, "-inf", cutoff_ms, start=0, num=batch)
	if not doomed:
		return 0
	rows = await load_posts(doomed)
	async with redis_client.pipeline(transaction=True) as pipe:
		for post_id in doomed:
			post = rows.get(post_id)
			if post is None:
				# Row already gone; drop the dangling index entries.
				pipe.zrem(GEO_POSTS_KEY, post_id)
				pipe.zrem(EXPIRY_KEY, post_id)
				continue
			_unlink(pipe, post)
		await pipe.execute()
	return len(doomed)


def _unlink(pipe, post: Post) -> None:
	pipe.delete(post_key(post.id))
	pipe.zrem(GEO_POSTS_KEY, post.id)
	pipe.zrem(EXPIRY_KEY, post.id)
	pipe.zrem(owner_key(post.owner_id), post.id)


__all__ = [
	"GEO_POSTS_KEY",
	"EXPIRY_KEY",
	"create_post",
	"load_posts",
	"get_post",
	"delete_post",
	"posts_by_owners",
	"purge_expired",
]
