"""Feed reconciliation: turns tracker state and user choices into feed state.

A query is identified by its key (mode, ~1 m centre bucket, radius). A new key
cancels the query in flight and bumps the generation counter; results tagged
with an older generation are dropped, so the last request wins regardless of
response order. Query failures keep the items on screen and set ``error``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Generic, List, Literal, Optional, Protocol, TypeVar

from nearcast.client.location.tracker import LocationTracker
from nearcast.client.reconcile import DEFAULT_CACHE_RETENTION_S, FeedKey, ResultCache, enforce_radius
from nearcast.domain.errors import LocationUnavailable, NearcastError, QueryFailed
from nearcast.domain.posts.schemas import FeedResponse, NearbyPostsResponse, PostCreated, PostOut
from nearcast.domain.proximity.geodesy import GeoPoint, center_bucket
from nearcast.domain.proximity.schemas import NearbyUser, NearbyUsersResponse

logger = logging.getLogger(__name__)

FeedMode = Literal["nearby", "friends"]
T = TypeVar("T")

POSTS_RADIUS_BOUNDS = (1, 100)
USERS_RADIUS_BOUNDS = (1, 60)
DEFAULT_RADIUS_KM = 10
DEFAULT_REFRESH_INTERVAL_S = 10.0


class FeedApi(Protocol):
    async def nearby_posts(self, *, lat: float, lng: float, radius_km: float) -> NearbyPostsResponse:
        ...

    async def friend_posts(self) -> FeedResponse:
        ...

    async def create_post(
        self, *, content: str, lat: float, lng: float, image_url: Optional[str] = None
    ) -> PostCreated:
        ...

    async def nearby_users(
        self, *, lat: float, lng: float, radius_km: float, search: Optional[str] = None
    ) -> NearbyUsersResponse:
        ...


def clamp_preference(radius_km: float, bounds: tuple[int, int]) -> int:
    """Radius preference as whole kilometres inside ``bounds``."""
    lower, upper = bounds
    return int(min(max(round(radius_km), lower), upper))


@dataclass(frozen=True)
class FeedState(Generic[T]):
    mode: str
    items: List[T] = field(default_factory=list)
    is_loading: bool = False
    is_refreshing: bool = False
    waiting_for_location: bool = False
    error: Optional[Exception] = None


class _ReconciledQuery(Generic[T]):
    """Shared machinery: keyed cache, last-request-wins, periodic refresh."""

    mode: str = ""

    def __init__(
        self,
        tracker: LocationTracker,
        *,
        refresh_interval_s: float,
        cache_retention_s: float,
    ) -> None:
        self.tracker = tracker
        self.refresh_interval_s = refresh_interval_s
        self._cache: ResultCache[T] = ResultCache(cache_retention_s)
        self._state: FeedState[T] = FeedState(mode=self.mode)
        self._listeners: List[Callable[[FeedState[T]], None]] = []
        self._generation = 0
        self._active_key: Optional[FeedKey] = None
        self._inflight: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()
        self._ticker: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._closed = False

    @property
    def state(self) -> FeedState[T]:
        return self._state

    @property
    def center(self) -> Optional[GeoPoint]:
        position = self.tracker.position
        return position.point if position is not None else None

    def subscribe(self, listener: Callable[[FeedState[T]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    async def start(self) -> None:
        if self._unsubscribe is not None or self._closed:
            return
        self._unsubscribe = self.tracker.subscribe(self._on_tracker_change)
        if self.refresh_interval_s > 0:
            self._ticker = asyncio.create_task(self._tick(), name=f"{self.mode}-feed-refresh")
        await self._requery()

    async def refresh(self) -> None:
        """Re-run the current query, keeping items visible while it runs."""
        await self._requery(force=True)

    async def wait_idle(self) -> None:
        """Wait until queries triggered by tracker updates have settled."""
        while True:
            tasks = {task for task in self._pending if not task.done()}
            if self._inflight is not None and not self._inflight.done():
                tasks.add(self._inflight)
            if not tasks:
                return
            await asyncio.wait(tasks)

    def dismiss_error(self) -> None:
        if self._state.error is not None:
            self._set(error=None)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        tasks = [task for task in (self._ticker, self._inflight) if task is not None]
        tasks.extend(self._pending)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._ticker = None
        self._inflight = None
        self._pending.clear()
        self._listeners.clear()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # Subclass hooks.

    def _key(self) -> Optional[FeedKey]:
        raise NotImplementedError

    def _needs_location(self) -> bool:
        return True

    def _radius_km(self) -> Optional[float]:
        return None

    async def _fetch(self, center: Optional[GeoPoint]) -> List[T]:
        raise NotImplementedError

    # Internals.

    def _set(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("feed listener failed")

    def _on_tracker_change(self, tracker: LocationTracker) -> None:
        if self._closed or not self._needs_location():
            return
        if self._key() != self._active_key or (self._active_key is None and tracker.error is not None):
            self._spawn(self._requery())

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _auto_refresh(self) -> bool:
        return True

    async def _tick(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.refresh_interval_s)
            if not self._auto_refresh() or self._active_key is None:
                continue
            if self._inflight is not None and not self._inflight.done():
                continue
            await self._requery(force=True)

    def _cancel_inflight(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None

    async def _requery(self, *, force: bool = False) -> None:
        if self._closed:
            return
        key = self._key()
        if key is None:
            self._generation += 1
            self._cancel_inflight()
            self._active_key = None
            self._show_waiting()
            return
        if key == self._active_key and not force and self._inflight is not None and not self._inflight.done():
            await asyncio.wait({self._inflight})
            return

        self._generation += 1
        generation = self._generation
        self._cancel_inflight()
        if key != self._active_key:
            cached = self._cache.get(key)
            if cached is not None:
                self._set(items=cached, is_loading=False, is_refreshing=True, waiting_for_location=False, error=None)
            else:
                self._set(items=[], is_loading=True, is_refreshing=False, waiting_for_location=False, error=None)
        else:
            self._set(is_refreshing=True, waiting_for_location=False)
        self._active_key = key

        task = asyncio.create_task(self._run(generation, key, self.center))
        self._inflight = task
        await asyncio.wait({task})

    def _show_waiting(self) -> None:
        location_error = self.tracker.error
        self._set(
            items=[],
            is_loading=False,
            is_refreshing=False,
            waiting_for_location=location_error is None,
            error=location_error,
        )

    async def _run(self, generation: int, key: FeedKey, center: Optional[GeoPoint]) -> None:
        try:
            items = await self._fetch(center)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation != self._generation:
                return
            error = exc if isinstance(exc, NearcastError) else QueryFailed(str(exc) or "query_failed")
            logger.warning("%s query failed: %s", self.mode, error.detail)
            # Keep whatever is on screen.
            self._set(is_loading=False, is_refreshing=False, error=error)
            return
        if generation != self._generation:
            logger.debug("dropping superseded %s result generation=%s", self.mode, generation)
            return
        radius = self._radius_km()
        if center is not None and radius is not None:
            items = enforce_radius(items, center, radius)
        self._cache.put(key, items)
        self._set(items=items, is_loading=False, is_refreshing=False, waiting_for_location=False, error=None)


class FeedController(_ReconciledQuery[PostOut]):
    """Post feed in ``nearby`` (radius) or ``friends`` (social graph) mode."""

    def __init__(
        self,
        api: FeedApi,
        tracker: LocationTracker,
        *,
        identity: Optional[str] = None,
        mode: FeedMode = "nearby",
        radius_km: float = DEFAULT_RADIUS_KM,
        refresh_interval_s: float = DEFAULT_REFRESH_INTERVAL_S,
        cache_retention_s: float = DEFAULT_CACHE_RETENTION_S,
    ) -> None:
        self.mode = mode
        super().__init__(tracker, refresh_interval_s=refresh_interval_s, cache_retention_s=cache_retention_s)
        self.api = api
        self.identity = identity
        self.radius_km = clamp_preference(radius_km, POSTS_RADIUS_BOUNDS)

    async def set_mode(self, mode: FeedMode) -> None:
        if mode == self.mode:
            return
        self.mode = mode
        self._set(mode=mode)
        await self._requery()

    async def set_radius(self, radius_km: float) -> None:
        radius = clamp_preference(radius_km, POSTS_RADIUS_BOUNDS)
        if radius == self.radius_km:
            return
        self.radius_km = radius
        await self._requery()

    async def set_identity(self, identity: Optional[str]) -> None:
        if identity == self.identity:
            return
        self.identity = identity
        await self._requery()

    async def create_post(self, content: str, *, image_url: Optional[str] = None) -> PostCreated:
        """Create a post at the freshest available position, then refresh.

        Raises LocationUnavailable when no position is known at all; API
        errors propagate to the caller.
        """
        position = await self.tracker.fresh_fix()
        if position is None:
            raise LocationUnavailable()
        created = await self.api.create_post(
            content=content,
            lat=position.latitude,
            lng=position.longitude,
            image_url=image_url,
        )
        await self.refresh()
        return created

    def _needs_location(self) -> bool:
        return self.mode == "nearby"

    def _key(self) -> Optional[FeedKey]:
        if self.mode == "friends":
            if not self.identity:
                return None
            return ("friends", self.identity)
        center = self.center
        if center is None:
            return None
        return ("nearby", center_bucket(center.lat, center.lng), self.radius_km)

    def _radius_km(self) -> Optional[float]:
        return float(self.radius_km) if self.mode == "nearby" else None

    def _show_waiting(self) -> None:
        if self.mode == "friends":
            # Without an identity the friends feed is simply unavailable.
            self._set(items=[], is_loading=False, is_refreshing=False, waiting_for_location=False, error=None)
            return
        super()._show_waiting()

    async def _fetch(self, center: Optional[GeoPoint]) -> List[PostOut]:
        if self.mode == "friends":
            response = await self.api.friend_posts()
            return list(response.items)
        assert center is not None
        nearby = await self.api.nearby_posts(lat=center.lat, lng=center.lng, radius_km=self.radius_km)
        return list(nearby.items)

    def _auto_refresh(self) -> bool:
        return self.mode == "nearby"


class NearbyUsersView(_ReconciledQuery[NearbyUser]):
    """Nearby-user list behind the map view."""

    mode = "users"

    def __init__(
        self,
        api: FeedApi,
        tracker: LocationTracker,
        *,
        radius_km: float = DEFAULT_RADIUS_KM,
        search: Optional[str] = None,
        refresh_interval_s: float = DEFAULT_REFRESH_INTERVAL_S,
        cache_retention_s: float = DEFAULT_CACHE_RETENTION_S,
    ) -> None:
        super().__init__(tracker, refresh_interval_s=refresh_interval_s, cache_retention_s=cache_retention_s)
        self.api = api
        self.radius_km = clamp_preference(radius_km, USERS_RADIUS_BOUNDS)
        self.search = (search or "").strip() or None

    async def set_radius(self, radius_km: float) -> None:
        radius = clamp_preference(radius_km, USERS_RADIUS_BOUNDS)
        if radius != self.radius_km:
            self.radius_km = radius
            await self._requery()

    async def set_search(self, search: Optional[str]) -> None:
        term = (search or "").strip() or None
        if term != self.search:
            self.search = term
            await self._requery()

    def _key(self) -> Optional[FeedKey]:
        center = self.center
        if center is None:
            return None
        return ("users", center_bucket(center.lat, center.lng), self.radius_km, (self.search or "").casefold())

    def _radius_km(self) -> Optional[float]:
        return float(self.radius_km)

    async def _fetch(self, center: Optional[GeoPoint]) -> List[NearbyUser]:
        assert center is not None
        response = await self.api.nearby_users(
            lat=center.lat, lng=center.lng, radius_km=self.radius_km, search=self.search
        )
        return list(response.items)


__all__ = [
    "FeedApi",
    "FeedController",
    "FeedMode",
    "FeedState",
    "NearbyUsersView",
    "clamp_preference",
]
