"""Helpers that read profiles and friendships owned by other services from Postgres."""

from __future__ import annotations

from typing import Dict, List, Sequence

from nearcast.infra.postgres import get_pool


async def load_friend_ids(user_id: str) -> List[str]:
	pool = await get_pool()
	rows = await pool.fetch(
		"""
		SELECT friend_id
		FROM friendships
		WHERE user_id = $1::uuid AND status = 'accepted'
		""",
		user_id,
	)
	return [str(row["friend_id"]) for row in rows]


async def load_profiles(user_ids: Sequence[str]) -> Dict[str, Dict[str, object]]:
	if not user_ids:
		return {}
	pool = await get_pool()
	# Cast parameter to uuid[] to avoid mismatched comparisons when passing string IDs
	rows = await pool.fetch(
		"""
		SELECT id, username, full_name, avatar_url
		FROM users
		WHERE id = ANY($1::uuid[]) AND deleted_at IS NULL
		""",
		list({uid for uid in user_ids}),
	)
	return {
		str(row["id"]): {
			"username": row["username"],
			"full_name": row["full_name"],
			"avatar_url": row["avatar_url"],
		}
		for row in rows
	}
