"""Pydantic schemas for post endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from nearcast.domain.posts.models import Post
from nearcast.domain.proximity.geodesy import GEO_MAX_LATITUDE, GEO_MAX_LONGITUDE


def ms_to_datetime(value: int) -> datetime:
	return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class PostCreate(BaseModel):
	"""Payload accepted from the post-creation collaborator.

	There is deliberately no expiry field: the lifetime is a system constant.
	"""

	content: str = Field(..., min_length=1, max_length=500)
	lat: float = Field(..., ge=-GEO_MAX_LATITUDE, le=GEO_MAX_LATITUDE)
	lng: float = Field(..., ge=-GEO_MAX_LONGITUDE, le=GEO_MAX_LONGITUDE)
	image_url: Optional[str] = Field(default=None, max_length=2048)

	@field_validator("content")
	def strip_content(cls, value: str) -> str:
		stripped = value.strip()
		if not stripped:
			raise ValueError("content must not be blank")
		return stripped


class PostOut(BaseModel):
	id: UUID
	owner_id: UUID
	content: str
	image_url: Optional[str] = None
	lat: float
	lng: float
	created_at: datetime
	expires_at: datetime

	@classmethod
	def from_post(cls, post: Post) -> "PostOut":
		return cls(
			id=UUID(post.id),
			owner_id=UUID(post.owner_id),
			content=post.content,
			image_url=post.image_url,
			lat=post.lat,
			lng=post.lng,
			created_at=ms_to_datetime(post.created_at_ms),
			expires_at=ms_to_datetime(post.expires_at_ms),
		)


class PostCreated(BaseModel):
	id: UUID
	created_at: datetime
	expires_at: datetime


class NearbyPost(PostOut):
	distance_km: float = Field(..., ge=0)


class FeedResponse(BaseModel):
	items: list[PostOut]


class NearbyPostsResponse(BaseModel):
	items: list[NearbyPost]
	radius_km: float
