"""Async HTTP client for the Nearcast API."""

from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

import httpx

from nearcast.domain.errors import (
    NearcastError,
    NotFoundError,
    QueryFailed,
    UnauthenticatedError,
    UnauthorizedError,
    ValidationError,
)
from nearcast.domain.location.schemas import LocationOut, LocationUpdateResult
from nearcast.domain.posts.schemas import FeedResponse, NearbyPostsResponse, PostCreated, PostOut
from nearcast.domain.proximity.schemas import NearbyUsersResponse

logger = logging.getLogger(__name__)

_STATUS_ERRORS: dict[int, type[NearcastError]] = {
    401: UnauthenticatedError,
    403: UnauthorizedError,
    404: NotFoundError,
    422: ValidationError,
}


def _detail(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    detail = body.get("detail") if isinstance(body, dict) else None
    return detail if isinstance(detail, str) else None


def error_for_response(response: httpx.Response) -> NearcastError:
    """Map a non-2xx response onto the shared error taxonomy."""
    error_cls = _STATUS_ERRORS.get(response.status_code, QueryFailed)
    detail = _detail(response)
    if error_cls is QueryFailed:
        detail = detail or f"http_{response.status_code}"
    return error_cls(detail)


class NearcastClient:
    """One coroutine per HTTP operation; responses are parsed into the API schemas.

    Pass ``token`` for bearer auth. ``user_id`` sends the dev-only
    ``X-User-Id`` header instead.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers: dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif user_id:
            headers["X-User-Id"] = str(user_id)
        self.user_id = user_id
        self._http = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "NearcastClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("request failed method=%s path=%s error=%s", method, path, exc)
            raise QueryFailed("transport_error") from exc
        if response.is_success:
            return response
        raise error_for_response(response)

    async def update_location(
        self,
        *,
        lat: float,
        lng: float,
        captured_at_ms: int,
        device_id: str,
        accuracy_m: Optional[float] = None,
    ) -> LocationUpdateResult:
        payload: dict[str, Any] = {
            "lat": lat,
            "lng": lng,
            "captured_at": captured_at_ms,
            "device_id": device_id,
        }
        if accuracy_m is not None:
            payload["accuracy_m"] = accuracy_m
        response = await self._request("POST", "/location", json=payload)
        return LocationUpdateResult.model_validate(response.json())

    async def own_location(self) -> LocationOut:
        response = await self._request("GET", "/location/self")
        return LocationOut.model_validate(response.json())

    async def create_post(
        self,
        *,
        content: str,
        lat: float,
        lng: float,
        image_url: Optional[str] = None,
    ) -> PostCreated:
        payload: dict[str, Any] = {"content": content, "lat": lat, "lng": lng}
        if image_url:
            payload["image_url"] = image_url
        response = await self._request("POST", "/posts", json=payload)
        return PostCreated.model_validate(response.json())

    async def get_post(self, post_id: UUID | str) -> PostOut:
        response = await self._request("GET", f"/posts/{post_id}")
        return PostOut.model_validate(response.json())

    async def delete_post(self, post_id: UUID | str) -> None:
        await self._request("DELETE", f"/posts/{post_id}")

    async def nearby_posts(self, *, lat: float, lng: float, radius_km: float) -> NearbyPostsResponse:
        params = {"lat": lat, "lng": lng, "radius_km": radius_km}
        response = await self._request("GET", "/posts/nearby", params=params)
        return NearbyPostsResponse.model_validate(response.json())

    async def friend_posts(self) -> FeedResponse:
        response = await self._request("GET", "/posts/friends")
        return FeedResponse.model_validate(response.json())

    async def nearby_users(
        self,
        *,
        lat: float,
        lng: float,
        radius_km: float,
        search: Optional[str] = None,
    ) -> NearbyUsersResponse:
        params: dict[str, Any] = {"lat": lat, "lng": lng, "radius_km": radius_km}
        if search:
            params["search"] = search
        response = await self._request("GET", "/users/nearby", params=params)
        return NearbyUsersResponse.model_validate(response.json())


__all__ = ["NearcastClient", "error_for_response"]
