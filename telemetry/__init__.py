"""
Telemetry Contracts Package

Provides shared constants and validation for the aircraft feed, route
lookups and watchlist rules.
"""

from telemetry.constants import *
from telemetry.validation import (
    AircraftRecord,
    RawSnapshot,
    RouteRequest,
    RouteResult,
    MatchField,
    MatchMode,
    WatchEntry,
    seen_seconds,
    validate_snapshot,
    validate_watch_entry,
    validate_watchlist,
)

__all__ = [
    # Constants
    "NOTIFICATION_RING_SIZE",
    "EARTH_RADIUS_MI",
    "TRAIL_EPSILON_DEG",
    "ROUTE_BACKOFF_MAX_SECS",
    # Models
    "AircraftRecord",
    "RawSnapshot",
    "RouteRequest",
    "RouteResult",
    "MatchField",
    "MatchMode",
    "WatchEntry",
    # Helpers
    "seen_seconds",
    # Validators
    "validate_snapshot",
    "validate_watch_entry",
    "validate_watchlist",
]
