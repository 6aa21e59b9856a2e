"""Location acquisition backends.

One contract, three implementations: a native provider with explicit permission
calls (Capacitor-style), a browser ``navigator.geolocation``-style callback API,
and a backend for platforms with neither. ``select_backend`` picks one once.
Both real backends pass ``maximumAge``/``timeout`` to the platform and also
bound every acquisition with ``asyncio.wait_for`` so callers observe the same
timeout semantics whichever platform answers.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol

from nearcast.client.location.models import AcquisitionOptions, Position
from nearcast.domain.errors import (
    AcquisitionFailed,
    AcquisitionTimeout,
    LocationError,
    LocationUnsupported,
    PermissionDenied,
)

logger = logging.getLogger(__name__)

PositionCallback = Callable[[Position], None]
ErrorCallback = Callable[[LocationError], None]

# Codes defined by the W3C GeolocationPositionError interface.
_BROWSER_PERMISSION_DENIED = 1
_BROWSER_TIMEOUT = 3


class WatchHandle(Protocol):
    async def close(self) -> None:
        ...


class LocationBackend(Protocol):
    name: str

    async def current_position(self, options: AcquisitionOptions) -> Position:
        ...

    async def watch(
        self,
        options: AcquisitionOptions,
        on_position: PositionCallback,
        on_error: ErrorCallback,
    ) -> WatchHandle:
        ...


class NativeGeolocation(Protocol):
    """Shape of the native plugin (``@capacitor/geolocation`` API)."""

    async def check_permissions(self) -> Mapping[str, Any]:
        ...

    async def request_permissions(self) -> Mapping[str, Any]:
        ...

    async def get_current_position(self, options: Mapping[str, Any]) -> Any:
        ...

    async def watch_position(self, options: Mapping[str, Any], callback: Callable[[Any, Any], None]) -> str:
        ...

    async def clear_watch(self, options: Mapping[str, Any]) -> None:
        ...


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def position_from_platform(raw: Any) -> Position:
    """Normalise a platform position (mapping or JS-proxy object) to Position."""
    coords = _field(raw, "coords")
    if coords is None:
        raise AcquisitionFailed("position_without_coords")
    latitude = _field(coords, "latitude")
    longitude = _field(coords, "longitude")
    if latitude is None or longitude is None:
        raise AcquisitionFailed("position_without_coords")
    timestamp = _field(raw, "timestamp")
    accuracy = _field(coords, "accuracy")
    return Position(
        latitude=float(latitude),
        longitude=float(longitude),
        captured_at=float(timestamp) / 1000 if timestamp is not None else time.time(),
        accuracy_m=float(accuracy) if accuracy is not None else None,
    )


async def _bounded(awaitable: Awaitable[Any], options: AcquisitionOptions) -> Any:
    try:
        return await asyncio.wait_for(awaitable, timeout=options.timeout_s)
    except asyncio.TimeoutError:
        raise AcquisitionTimeout(f"no fix within {options.timeout_s:g}s") from None


class _NativeWatch:
    def __init__(self, provider: NativeGeolocation, watch_id: str) -> None:
        self._provider = provider
        self._watch_id = watch_id
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._provider.clear_watch({"id": self._watch_id})
        except Exception:
            logger.warning("failed to clear native watch id=%s", self._watch_id, exc_info=True)


class NativeLocationBackend:
    """Backend for mobile shells exposing an explicit permission API."""

    name = "native"

    def __init__(self, provider: NativeGeolocation) -> None:
        self._provider = provider

    async def ensure_permission(self) -> None:
        try:
            current = await self._provider.check_permissions()
            if _field(current, "location") == "granted":
                return
            requested = await self._provider.request_permissions()
        except Exception as exc:
            logger.warning("location permission request failed: %s", exc)
            raise PermissionDenied("permission_request_failed") from exc
        if _field(requested, "location") != "granted":
            raise PermissionDenied()

    async def current_position(self, options: AcquisitionOptions) -> Position:
        await self.ensure_permission()
        try:
            raw = await _bounded(self._provider.get_current_position(options.to_platform()), options)
        except LocationError:
            raise
        except Exception as exc:
            raise AcquisitionFailed(str(exc) or "acquisition_failed") from exc
        return position_from_platform(raw)

    async def watch(
        self,
        options: AcquisitionOptions,
        on_position: PositionCallback,
        on_error: ErrorCallback,
    ) -> WatchHandle:
        await self.ensure_permission()
        handle: Optional[_NativeWatch] = None

        def _callback(raw: Any, err: Any) -> None:
            if handle is not None and handle.closed:
                return
            if err is not None or raw is None:
                on_error(AcquisitionFailed(str(_field(err, "message") or err or "watch_failed")))
                return
            try:
                position = position_from_platform(raw)
            except LocationError as exc:
                on_error(exc)
                return
            on_position(position)

        watch_id = await self._provider.watch_position(options.to_platform(), _callback)
        handle = _NativeWatch(self._provider, watch_id)
        return handle


class _BrowserWatch:
    def __init__(self, geolocation: Any, watch_id: Any, proxies: list[Any]) -> None:
        self._geolocation = geolocation
        self._watch_id = watch_id
        self._proxies = proxies
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._geolocation.clearWatch(self._watch_id)
        for proxy in self._proxies:
            destroy = getattr(proxy, "destroy", None)
            if callable(destroy):
                destroy()


def _browser_error(err: Any) -> LocationError:
    code = _field(err, "code")
    message = str(_field(err, "message") or "") or None
    if code == _BROWSER_PERMISSION_DENIED:
        return PermissionDenied(message)
    if code == _BROWSER_TIMEOUT:
        return AcquisitionTimeout(message)
    return AcquisitionFailed(message)


class BrowserLocationBackend:
    """Backend over a ``navigator.geolocation``-style callback API.

    Permission is implicit: the platform prompts on first use and reports a
    refusal through the error callback.
    """

    name = "browser"

    def __init__(
        self,
        geolocation: Any,
        *,
        convert_options: Callable[[dict[str, Any]], Any] = lambda options: options,
        wrap_callback: Callable[[Callable[..., None]], Any] = lambda func: func,
    ) -> None:
        self._geolocation = geolocation
        self._convert_options = convert_options
        self._wrap_callback = wrap_callback

    async def current_position(self, options: AcquisitionOptions) -> Position:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Position] = loop.create_future()

        def _success(raw: Any) -> None:
            if future.done():
                return
            try:
                future.set_result(position_from_platform(raw))
            except LocationError as exc:
                future.set_exception(exc)

        def _failure(err: Any) -> None:
            if not future.done():
                future.set_exception(_browser_error(err))

        success = self._wrap_callback(_success)
        failure = self._wrap_callback(_failure)
        try:
            self._geolocation.getCurrentPosition(success, failure, self._convert_options(options.to_platform()))
            return await _bounded(future, options)
        finally:
            for proxy in (success, failure):
                destroy = getattr(proxy, "destroy", None)
                if callable(destroy):
                    destroy()

    async def watch(
        self,
        options: AcquisitionOptions,
        on_position: PositionCallback,
        on_error: ErrorCallback,
    ) -> WatchHandle:
        handle: Optional[_BrowserWatch] = None

        def _success(raw: Any) -> None:
            if handle is not None and handle.closed:
                return
            try:
                on_position(position_from_platform(raw))
            except LocationError as exc:
                on_error(exc)

        def _failure(err: Any) -> None:
            if handle is not None and handle.closed:
                return
            on_error(_browser_error(err))

        success = self._wrap_callback(_success)
        failure = self._wrap_callback(_failure)
        watch_id = self._geolocation.watchPosition(success, failure, self._convert_options(options.to_platform()))
        handle = _BrowserWatch(self._geolocation, watch_id, [success, failure])
        return handle


class UnsupportedLocationBackend:
    name = "unsupported"

    async def current_position(self, options: AcquisitionOptions) -> Position:
        raise LocationUnsupported()

    async def watch(
        self,
        options: AcquisitionOptions,
        on_position: PositionCallback,
        on_error: ErrorCallback,
    ) -> WatchHandle:
        raise LocationUnsupported()


def _pyodide_backend() -> Optional[BrowserLocationBackend]:
    import js  # type: ignore[import-not-found]
    from pyodide.ffi import create_proxy, to_js  # type: ignore[import-not-found]

    geolocation = getattr(js.navigator, "geolocation", None)
    if geolocation is None:
        return None
    return BrowserLocationBackend(
        geolocation,
        convert_options=lambda options: to_js(options, dict_converter=js.Object.fromEntries),
        wrap_callback=create_proxy,
    )


def select_backend(
    *,
    native: Optional[NativeGeolocation] = None,
    geolocation: Any = None,
) -> LocationBackend:
    """Pick the acquisition backend for this runtime.

    An injected native provider wins, then an injected browser geolocation
    object, then the browser API of a Pyodide runtime.
    """
    if native is not None:
        return NativeLocationBackend(native)
    if geolocation is not None:
        return BrowserLocationBackend(geolocation)
    if sys.platform == "emscripten":
        backend = _pyodide_backend()
        if backend is not None:
            return backend
    return UnsupportedLocationBackend()


__all__ = [
    "LocationBackend",
    "WatchHandle",
    "NativeGeolocation",
    "NativeLocationBackend",
    "BrowserLocationBackend",
    "UnsupportedLocationBackend",
    "position_from_platform",
    "select_backend",
]
