"""
Shared constants for the live-state engine and its workers.

This module provides a single source of truth for:
- Notification labels and ring size
- Watchlist match fields and modes
- Rate estimator weights and route backoff limits

All packages should import from this module to ensure consistency.
"""

# Notification ring
NOTIFICATION_RING_SIZE = 10
NOTIFY_PREFIX_OVERPASS = "OVER"
NOTIFY_PREFIX_NEAR = "NEAR"
NOTIFY_PREFIX_WATCH = "WATCH"
NOTIFY_RECENCY_MULTIPLIER = 4
NOTIFY_RECENCY_FLOOR_SECS = 60.0

# Watchlist match fields
MATCH_HEX = "hex"
MATCH_CALLSIGN = "callsign"
MATCH_REGISTRATION = "registration"
MATCH_TYPE = "type"
MATCH_OWNER = "owner"
MATCH_CATEGORY = "category"
MATCH_ROUTE = "route"

# Watchlist match modes
MODE_EXACT = "exact"
MODE_PREFIX = "prefix"
MODE_CONTAINS = "contains"

# Trail dedup threshold (degrees, both axes)
TRAIL_EPSILON_DEG = 0.00001

# Earth radius used for site distance
EARTH_RADIUS_MI = 3958.8

# Rate estimator blend and smoothing weights
RATE_SHORT_WEIGHT = 0.7
RATE_WINDOW_WEIGHT = 0.3
RATE_EMA_ALPHA = 0.45
RATE_HOLD_FLOOR_SECS = 2.0
RATE_TAU_FLOOR_SECS = 3.0

# Route lookup backoff
ROUTE_BACKOFF_MAX_SECS = 300.0
ROUTE_BACKOFF_MAX_EXPONENT = 7
ROUTE_PENDING_MIN_SECS = 2.0
ROUTE_PENDING_MAX_SECS = 10.0

# Route cache retention: answers stay displayable past their TTL until this age
ROUTE_RETENTION_MULTIPLIER = 4
ROUTE_RETENTION_FLOOR_SECS = 600.0

# Last-seen times are kept this long for aircraft that left the feed
SEEN_RETENTION_SECS = 3600.0
