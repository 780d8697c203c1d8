"""
Prometheus metrics for the live-state engine.
"""

from prometheus_client import Counter, Gauge

SNAPSHOTS_APPLIED = Counter(
    'livestate_snapshots_applied_total',
    'Raw snapshots applied to the engine'
)

FEED_ERRORS = Counter(
    'livestate_feed_errors_total',
    'Transient feed errors received from the fetch worker'
)

COUNTER_RESETS = Counter(
    'livestate_counter_resets_total',
    'Message counter resets detected',
    ['scope']  # global, aircraft
)

NOTIFICATIONS_EMITTED = Counter(
    'livestate_notifications_emitted_total',
    'Notifications pushed to the ring',
    ['kind']  # proximity, watchlist
)

DISPLAY_SWAPS = Counter(
    'livestate_display_swaps_total',
    'Display snapshots published'
)

ROUTE_REQUESTS = Counter(
    'livestate_route_requests_total',
    'Route lookups handed to the route worker'
)

ROUTE_FAILURES = Counter(
    'livestate_route_failures_total',
    'Route lookup failures',
    ['reason']  # rate_limited, other
)

ROUTE_BACKOFF_SECONDS = Gauge(
    'livestate_route_backoff_seconds',
    'Length of the most recent route backoff'
)

AIRCRAFT_TRACKED = Gauge(
    'livestate_aircraft_tracked',
    'Aircraft in the latest raw snapshot'
)

MESSAGE_RATE = Gauge(
    'livestate_message_rate',
    'Smoothed global message rate (messages/s)'
)
