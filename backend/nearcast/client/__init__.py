"""Asyncio client SDK: location tracking, feed reconciliation and the HTTP client."""

from nearcast.client.api import NearcastClient
from nearcast.client.feed import FeedController, FeedState, NearbyUsersView
from nearcast.client.location.backends import (
    BrowserLocationBackend,
    NativeLocationBackend,
    UnsupportedLocationBackend,
    select_backend,
)
from nearcast.client.location.models import AcquisitionOptions, Position, TrackerOptions
from nearcast.client.location.store import LastKnownPositionStore
from nearcast.client.location.tracker import LocationTracker
from nearcast.client.sync import LocationSync

__all__ = [
    "AcquisitionOptions",
    "BrowserLocationBackend",
    "FeedController",
    "FeedState",
    "LastKnownPositionStore",
    "LocationSync",
    "LocationTracker",
    "NativeLocationBackend",
    "NearbyUsersView",
    "NearcastClient",
    "Position",
    "TrackerOptions",
    "UnsupportedLocationBackend",
    "select_backend",
]
