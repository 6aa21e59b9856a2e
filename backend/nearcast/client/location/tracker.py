"""Device location tracker.

Exposes the best known ``position``, an ``is_loading`` flag and an ``error``
field. Failures never raise out of the tracker: they are stored in ``error``
while the last known position is kept, and cleared by the next good fix.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Callable, List, Optional

from nearcast.client.location.backends import LocationBackend, WatchHandle, select_backend
from nearcast.client.location.models import AcquisitionOptions, Position, TrackerOptions
from nearcast.client.location.store import LastKnownPositionStore
from nearcast.domain.errors import AcquisitionFailed, LocationError

logger = logging.getLogger(__name__)

Listener = Callable[["LocationTracker"], None]

FRESH_FIX_TIMEOUT_S = 5.0


class LocationTracker:
    def __init__(
        self,
        backend: Optional[LocationBackend] = None,
        *,
        options: Optional[TrackerOptions] = None,
        store: Optional[LastKnownPositionStore] = None,
    ) -> None:
        self.backend = backend if backend is not None else select_backend()
        self.options = options or TrackerOptions()
        self._store = store
        self.position: Optional[Position] = store.load() if store is not None else None
        self.is_loading = self.position is None
        self.error: Optional[LocationError] = None
        self._listeners: List[Listener] = []
        self._watch: Optional[WatchHandle] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._started = False
        self._closed = False

    @property
    def watching(self) -> bool:
        return self._watch is not None

    async def __aenter__(self) -> "LocationTracker":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    async def start(self) -> None:
        """Serve the cached fix (already loaded), then acquire a fresh one.

        The cached fix is readable from construction on, so nothing waits on
        this call to render. It returns once the first acquisition settles,
        which is bounded by ``options.timeout_s``; run it as a task to keep
        going sooner. The watch and retry timer start after that first fix.
        """
        if self._started or self._closed:
            return
        self._started = True
        await self.refresh()
        if self.options.watch:
            await self._start_watch()
        if self.options.retry_interval_s > 0:
            self._retry_task = asyncio.create_task(self._retry_loop(), name="location-tracker-retry")

    async def refresh(self, options: Optional[AcquisitionOptions] = None) -> Optional[Position]:
        """One-shot acquisition. Always available, even without a watch."""
        if self._closed:
            return self.position
        self.is_loading = True
        self._notify()
        try:
            position = await self.backend.current_position(options or self.options.acquisition())
        except LocationError as exc:
            self._fail(exc)
        except Exception as exc:
            self._fail(AcquisitionFailed(str(exc) or "acquisition_failed"))
        else:
            self._apply(position)
        finally:
            self.is_loading = False
            self._notify()
        return self.position

    async def fresh_fix(self, timeout_s: float = FRESH_FIX_TIMEOUT_S) -> Optional[Position]:
        """Try for a new high-accuracy fix; fall back to the last known position.

        Unlike ``refresh`` a failure here does not move the tracker into an
        error state: the caller still has a usable, if older, position.
        """
        options = AcquisitionOptions(high_accuracy=True, maximum_age_s=0, timeout_s=timeout_s)
        try:
            position = await self.backend.current_position(options)
        except Exception as exc:
            logger.info("fresh fix failed, using last known position: %s", exc)
            return self.position
        self._apply(position)
        return self.position

    async def close(self) -> None:
        """Tear down the watch and the retry timer. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        retry, self._retry_task = self._retry_task, None
        if retry is not None:
            retry.cancel()
            with suppress(asyncio.CancelledError):
                await retry
        watch, self._watch = self._watch, None
        if watch is not None:
            await watch.close()
        self._listeners.clear()

    async def _start_watch(self) -> None:
        if self._watch is not None or self._closed:
            return
        try:
            handle = await self.backend.watch(self.options.acquisition(), self._on_watch_position, self._on_watch_error)
        except LocationError as exc:
            self._fail(exc)
            return
        except Exception as exc:
            self._fail(AcquisitionFailed(str(exc) or "watch_failed"))
            return
        if self._closed:
            # Closed while the platform was still registering the watch.
            await handle.close()
            return
        self._watch = handle

    async def _retry_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.options.retry_interval_s)
            if self.error is None and (self._watch is not None or not self.options.watch):
                continue
            if self.error is not None:
                await self.refresh()
            if self.options.watch and self.error is None:
                await self._start_watch()

    def _on_watch_position(self, position: Position) -> None:
        if not self._closed:
            self._apply(position)

    def _on_watch_error(self, error: LocationError) -> None:
        if not self._closed:
            self._fail(error)

    def _apply(self, position: Position) -> bool:
        current = self.position
        if current is not None and position.captured_at < current.captured_at:
            logger.debug(
                "discarding out-of-order fix captured_at=%s current=%s",
                position.captured_at,
                current.captured_at,
            )
            return False
        self.position = position
        self.error = None
        if self._store is not None:
            self._store.save(position)
        self._notify()
        return True

    def _fail(self, error: LocationError) -> None:
        logger.warning("location acquisition failed backend=%s code=%s", self.backend.name, error.code)
        self.error = error
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("location listener failed")


__all__ = ["LocationTracker", "FRESH_FIX_TIMEOUT_S"]
