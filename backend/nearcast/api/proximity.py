"""REST API surface for radius and friend feeds."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from nearcast.domain.posts.models import Post
from nearcast.domain.posts.schemas import FeedResponse, NearbyPost, NearbyPostsResponse, PostOut
from nearcast.domain.proximity import service as proximity_service
from nearcast.domain.proximity.geodesy import GEO_MAX_LATITUDE, GEO_MAX_LONGITUDE, GeoPoint
from nearcast.domain.proximity.models import NearbyUserEntity
from nearcast.domain.proximity.schemas import NearbyUser, NearbyUsersResponse
from nearcast.infra.auth import AuthenticatedUser, get_current_user
from nearcast.infra.rate_limit import enforce
from nearcast.settings import settings

router = APIRouter()


class CenterQuery:
    """Shared query parameters for radius lookups."""

    def __init__(
        self,
        lat: float = Query(..., ge=-GEO_MAX_LATITUDE, le=GEO_MAX_LATITUDE, allow_inf_nan=False),
        lng: float = Query(..., ge=-GEO_MAX_LONGITUDE, le=GEO_MAX_LONGITUDE, allow_inf_nan=False),
        radius_km: float = Query(..., gt=0, allow_inf_nan=False),
    ) -> None:
        self.center = GeoPoint(lat, lng)
        self.radius_km = radius_km


@router.get("/posts/nearby", response_model=NearbyPostsResponse)
async def nearby_posts(
    query: CenterQuery = Depends(),
    auth_user: AuthenticatedUser = Depends(get_current_user),
) -> NearbyPostsResponse:
    await enforce("nearby", auth_user.id, limit=settings.rate_limit_nearby_per_minute)
    results = await proximity_service.query_nearby(
        query.center, query.radius_km, "posts", caller_id=auth_user.id
    )
    items = []
    for result in results:
        post = result.entity
        assert isinstance(post, Post)
        items.append(
            NearbyPost(**PostOut.from_post(post).model_dump(), distance_km=round(result.distance_km, 6))
        )
    return NearbyPostsResponse(
        items=items,
        radius_km=proximity_service.effective_radius("posts", query.radius_km),
    )


@router.get("/posts/friends", response_model=FeedResponse)
async def friend_posts(auth_user: AuthenticatedUser = Depends(get_current_user)) -> FeedResponse:
    await enforce("nearby", auth_user.id, limit=settings.rate_limit_nearby_per_minute)
    posts = await proximity_service.friend_posts(auth_user.id)
    return FeedResponse(items=[PostOut.from_post(post) for post in posts])


@router.get("/users/nearby", response_model=NearbyUsersResponse)
async def nearby_users(
    query: CenterQuery = Depends(),
    search: Optional[str] = Query(default=None, max_length=64),
    auth_user: AuthenticatedUser = Depends(get_current_user),
) -> NearbyUsersResponse:
    await enforce("nearby", auth_user.id, limit=settings.rate_limit_nearby_per_minute)
    results = await proximity_service.query_nearby(
        query.center, query.radius_km, "users", caller_id=auth_user.id, search=search
    )
    items = []
    for result in results:
        entity = result.entity
        assert isinstance(entity, NearbyUserEntity)
        items.append(NearbyUser.from_entity(entity, round(result.distance_km, 6)))
    return NearbyUsersResponse(
        items=items,
        radius_km=proximity_service.effective_radius("users", query.radius_km),
    )
