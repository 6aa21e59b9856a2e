"""Pushes the tracker's position to the server when it moves ~1 m or more."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Callable, Optional, Protocol

from nearcast.client.location.models import Position
from nearcast.client.location.tracker import LocationTracker
from nearcast.domain.location.schemas import LocationUpdateResult

logger = logging.getLogger(__name__)


class LocationApi(Protocol):
    async def update_location(
        self,
        *,
        lat: float,
        lng: float,
        captured_at_ms: int,
        device_id: str,
        accuracy_m: Optional[float] = None,
    ) -> LocationUpdateResult:
        ...


class LocationSync:
    """Tracker listener that keeps the server copy of our position current.

    At most one push runs at a time; a change arriving mid-push is sent once the
    push finishes. A failed push is logged and retried on the next change.
    """

    def __init__(self, api: LocationApi, tracker: LocationTracker, *, device_id: str) -> None:
        self.api = api
        self.tracker = tracker
        self.device_id = device_id
        self.last_pushed: Optional[tuple[float, float]] = None
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.tracker.subscribe(self._on_change)
            self._on_change(self.tracker)

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    async def wait_idle(self) -> None:
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    def _on_change(self, tracker: LocationTracker) -> None:
        position = tracker.position
        if position is None or position.bucket == self.last_pushed:
            return
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._drain(), name="location-sync")

    async def _drain(self) -> None:
        while True:
            position = self.tracker.position
            if position is None or position.bucket == self.last_pushed:
                return
            if not await self._push(position):
                return

    async def _push(self, position: Position) -> bool:
        try:
            result = await self.api.update_location(
                lat=position.latitude,
                lng=position.longitude,
                captured_at_ms=position.captured_at_ms,
                device_id=self.device_id,
                accuracy_m=position.accuracy_m,
            )
        except Exception as exc:
            logger.warning("location sync failed: %s", exc)
            return False
        self.last_pushed = position.bucket
        if not result.applied:
            logger.debug("server kept a newer fix captured_at=%s", result.captured_at)
        return True


__all__ = ["LocationSync", "LocationApi"]
