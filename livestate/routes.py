"""
Route enrichment cache with request throttling and rate-limit backoff.

Route lookups are best effort: the engine asks for at most a batch of
callsigns per poll, never re-asks a callsign inside the refresh window, and
stops asking altogether while a rate-limit backoff is in effect.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from telemetry.constants import (
    ROUTE_BACKOFF_MAX_EXPONENT,
    ROUTE_BACKOFF_MAX_SECS,
    ROUTE_PENDING_MAX_SECS,
    ROUTE_PENDING_MIN_SECS,
    ROUTE_RETENTION_FLOOR_SECS,
    ROUTE_RETENTION_MULTIPLIER,
)
from telemetry.validation import AircraftRecord, RouteRequest, RouteResult
from livestate.identity import callsign_key, hex_key, normalize_callsign
from livestate.metrics import ROUTE_BACKOFF_SECONDS, ROUTE_FAILURES, ROUTE_REQUESTS

logger = logging.getLogger(__name__)

DEFAULT_ROUTE_TTL_SECS = 3600.0
DEFAULT_ROUTE_REFRESH_SECS = 15.0
DEFAULT_ROUTE_BATCH = 20
DEFAULT_ROUTE_ERROR_SECS = 10.0

RATE_LIMIT_PATTERN = re.compile(r"\b429\b|too many requests|rate limit", re.IGNORECASE)
RETRY_AFTER_PATTERN = re.compile(r"retry-after\s*=\s*(\d+(?:\.\d+)?)\s*s?", re.IGNORECASE)


@dataclass(frozen=True)
class RouteInfo:
    origin: Optional[str]
    destination: Optional[str]
    route: Optional[str]
    fetched_at: float

    @property
    def text(self) -> Optional[str]:
        """`origin-destination` when both are known, else the free-text route."""
        if self.origin and self.destination:
            return f"{self.origin}-{self.destination}"
        return self.route


def is_rate_limited(message: str) -> bool:
    return RATE_LIMIT_PATTERN.search(message) is not None


def retry_after_hint(message: str) -> Optional[float]:
    """Parse a `retry-after=<n>s` token, if the worker included one."""
    match = RETRY_AFTER_PATTERN.search(message)
    if match is None:
        return None
    return float(match.group(1))


def backoff_delay(failures: int, hint: Optional[float] = None) -> float:
    """Exponential backoff in seconds for the n-th consecutive failure."""
    exponent = min(max(failures - 1, 0), ROUTE_BACKOFF_MAX_EXPONENT)
    delay = max(hint or 0.0, float(2 ** exponent))
    return min(delay, ROUTE_BACKOFF_MAX_SECS)


class RouteCacheThrottle:
    """TTL cache of route answers plus the request throttle in front of it."""

    def __init__(
        self,
        enabled: bool = True,
        ttl: float = DEFAULT_ROUTE_TTL_SECS,
        refresh: float = DEFAULT_ROUTE_REFRESH_SECS,
        batch: int = DEFAULT_ROUTE_BATCH,
        error_display_secs: float = DEFAULT_ROUTE_ERROR_SECS,
    ):
        self.enabled = enabled
        self.ttl = max(ttl, 0.0)
        self.refresh = max(refresh, 0.0)
        self.batch = max(batch, 1)
        self.error_display_secs = error_display_secs
        self.cache: Dict[str, RouteInfo] = {}
        self.last_request: Dict[str, float] = {}
        self.backoff_until: Optional[float] = None
        self.failures = 0
        self.last_poll: Optional[float] = None
        self._error: Optional[Tuple[str, float]] = None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def in_backoff(self, now: float) -> bool:
        return self.backoff_until is not None and now < self.backoff_until

    def backoff_remaining(self, now: float) -> float:
        if not self.in_backoff(now):
            return 0.0
        return self.backoff_until - now

    def poll_due(self, now: float) -> bool:
        if self.refresh == 0 or self.last_poll is None:
            return True
        return now - self.last_poll >= self.refresh

    def mark_poll(self, now: float):
        self.last_poll = now

    def collect_requests(
        self,
        visible: Iterable[AircraftRecord],
        now: float,
        batch_limit: Optional[int] = None,
    ) -> List[RouteRequest]:
        """
        Pick the callsigns that need a lookup, in display order.

        Every returned request is stamped so it is not asked again until the
        refresh window has passed.
        """
        self.prune(now)
        if not self.enabled or self.in_backoff(now):
            return []

        limit = self.batch if batch_limit is None else max(batch_limit, 0)
        requests = []
        batch_keys = set()

        for record in visible:
            if len(requests) >= limit:
                break
            callsign = (record.callsign or "").strip()
            if not callsign:
                continue
            key = normalize_callsign(callsign)
            if key in batch_keys:
                continue
            if self._is_fresh(key, now) or self._recently_requested(key, now):
                continue

            self.last_request[key] = now
            batch_keys.add(key)
            requests.append(RouteRequest(
                callsign=callsign,
                lat=record.lat if record.lat is not None else 0.0,
                lon=record.lon if record.lon is not None else 0.0,
            ))

        if requests:
            ROUTE_REQUESTS.inc(len(requests))
            logger.debug(f"Issuing {len(requests)} route lookups")
        return requests

    @property
    def retention(self) -> float:
        return max(self.ttl * ROUTE_RETENTION_MULTIPLIER, ROUTE_RETENTION_FLOOR_SECS)

    def prune(self, now: float):
        """Drop request stamps that no longer throttle and answers past retention."""
        request_age = max(self.refresh, self.pending_window)
        stale = [key for key, at in self.last_request.items() if now - at > request_age]
        for key in stale:
            del self.last_request[key]

        retention = self.retention
        expired = [key for key, info in self.cache.items() if now - info.fetched_at > retention]
        for key in expired:
            del self.cache[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired route entries")

    def _is_fresh(self, key: str, now: float) -> bool:
        if self.ttl == 0:
            return False
        info = self.cache.get(key)
        return info is not None and now - info.fetched_at < self.ttl

    def _recently_requested(self, key: str, now: float) -> bool:
        if self.refresh == 0:
            return False
        last = self.last_request.get(key)
        return last is not None and now - last < self.refresh

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def apply_results(self, results: Iterable[RouteResult], now: float):
        """Upsert answers and clear any backoff."""
        stored = 0
        for result in results:
            key = normalize_callsign(result.callsign)
            if not key:
                continue
            self.cache[key] = RouteInfo(
                origin=result.origin,
                destination=result.destination,
                route=result.route,
                fetched_at=now,
            )
            stored += 1

        if self.failures or self.backoff_until is not None:
            logger.info("Route lookups recovered, clearing backoff")
        self.failures = 0
        self.backoff_until = None
        self._error = None
        ROUTE_BACKOFF_SECONDS.set(0)
        logger.debug(f"Stored {stored} route results")

    def note_failure(self, message: str, now: float) -> bool:
        """
        Record a failed lookup.

        Returns:
            True if the failure was a rate limit and a backoff was scheduled.
        """
        self._error = (message, now)
        if not is_rate_limited(message):
            ROUTE_FAILURES.labels(reason="other").inc()
            return False

        self.failures += 1
        delay = backoff_delay(self.failures, retry_after_hint(message))
        self.backoff_until = now + delay
        ROUTE_FAILURES.labels(reason="rate_limited").inc()
        ROUTE_BACKOFF_SECONDS.set(delay)
        logger.warning(
            f"Route lookups rate limited ({self.failures} in a row), backing off {delay:.0f}s"
        )
        return True

    def error(self, now: float) -> Optional[str]:
        """Most recent route error, until its display time expires."""
        if self._error is None:
            return None
        message, at = self._error
        if now - at > self.error_display_secs:
            return None
        return message

    # ------------------------------------------------------------------
    # Lookups for the renderer
    # ------------------------------------------------------------------

    @property
    def pending_window(self) -> float:
        return min(max(self.refresh, ROUTE_PENDING_MIN_SECS), ROUTE_PENDING_MAX_SECS)

    def is_pending(self, callsign: str, now: float) -> bool:
        """True while a lookup for `callsign` is in flight."""
        key = normalize_callsign(callsign)
        if not key:
            return False
        requested = self.last_request.get(key)
        if requested is None or now - requested >= self.pending_window:
            return False
        info = self.cache.get(key)
        return info is None or info.fetched_at < requested

    def route_for(self, record: AircraftRecord) -> Optional[RouteInfo]:
        key = callsign_key(record)
        if key is not None and key in self.cache:
            return self.cache[key]
        key = hex_key(record)
        if key is not None:
            return self.cache.get(key)
        return None
