"""REST API surface for creating, reading and deleting posts."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from nearcast.domain.posts import store as post_store
from nearcast.domain.posts.schemas import PostCreate, PostCreated, PostOut, ms_to_datetime
from nearcast.infra.auth import AuthenticatedUser, get_current_user
from nearcast.infra.rate_limit import enforce
from nearcast.settings import settings

router = APIRouter()


@router.post("/posts", response_model=PostCreated, status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: PostCreate,
    auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PostCreated:
    await enforce("posts", auth_user.id, limit=settings.rate_limit_posts_per_minute)
    post = await post_store.create_post(
        auth_user.id,
        content=payload.content,
        lat=payload.lat,
        lng=payload.lng,
        image_url=payload.image_url,
    )
    return PostCreated(
        id=UUID(post.id),
        created_at=ms_to_datetime(post.created_at_ms),
        expires_at=ms_to_datetime(post.expires_at_ms),
    )


@router.get("/posts/{post_id}", response_model=PostOut)
async def get_post(
    post_id: UUID,
    auth_user: AuthenticatedUser = Depends(get_current_user),
) -> PostOut:
    post = await post_store.get_post(str(post_id))
    return PostOut.from_post(post)


@router.delete("/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: UUID,
    auth_user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
    await post_store.delete_post(str(post_id), auth_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
