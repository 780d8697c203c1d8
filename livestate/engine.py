"""
LiveStateEngine - single owner of all live aircraft state.

Raw snapshots and feed errors arrive from the fetch worker; route answers
arrive from the route worker. Everything the renderer reads is exposed here
as pull-based accessors over immutable values.

Per raw snapshot the order is fixed: global rate, per-aircraft rates, seen
times, trends, trails, proximity alerts, watchlist alerts, then the raw
snapshot is committed. Every stage reads its own previous state before
overwriting it.
"""

import logging
import time
from typing import Dict, Iterable, List, Optional, Set

from telemetry.constants import SEEN_RETENTION_SECS
from telemetry.validation import AircraftRecord, RawSnapshot, RouteRequest, RouteResult, WatchEntry
from livestate.config import EngineConfig
from livestate.identity import hex_key, identity_key, normalize_hex
from livestate.metrics import (
    AIRCRAFT_TRACKED,
    COUNTER_RESETS,
    FEED_ERRORS,
    MESSAGE_RATE,
    NOTIFICATIONS_EMITTED,
    SNAPSHOTS_APPLIED,
)
from livestate.notifications import Notification, NotificationRing
from livestate.proximity import ProximityNotifier
from livestate.quality import is_low_quality, is_stale
from livestate.rates import DEFAULT_RATE_WINDOW_SECS, AircraftRateTable, RateEstimator
from livestate.routes import RouteCacheThrottle, RouteInfo
from livestate.smoothing import SnapshotSmoother
from livestate.trails import TrailBuffer, TrailPoint
from livestate.trends import Trend, TrendTracker
from livestate.watchlist import WatchlistMatcher

logger = logging.getLogger(__name__)

# The coarse total-rate estimator looks at a wider window than the primary one
COARSE_WINDOW_MULTIPLIER = 4


class LiveStateEngine:
    """Owns the display snapshot and all derived per-aircraft state."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        watchlist: Iterable[WatchEntry] = (),
        favorites: Iterable[str] = (),
    ):
        self.config = config or EngineConfig()
        cfg = self.config

        window = cfg.rate_window_secs if cfg.rate_window_secs > 0 else DEFAULT_RATE_WINDOW_SECS
        self.smoother = SnapshotSmoother(cfg.smooth_mode, cfg.smooth_merge, cfg.ui_fps)
        self.rate = RateEstimator(window, cfg.rate_min_secs)
        self.total_rate = RateEstimator(window * COARSE_WINDOW_MULTIPLIER, cfg.rate_min_secs)
        self.aircraft_rates = AircraftRateTable(window, cfg.rate_min_secs)
        self.trends = TrendTracker()
        self.trails = TrailBuffer(cfg.trail_len)
        self.proximity = ProximityNotifier(
            cfg.site,
            radius_mi=cfg.notify_radius_mi,
            overpass_mi=cfg.overpass_mi,
            cooldown=cfg.notify_cooldown_secs,
        )
        self.routes = RouteCacheThrottle(
            enabled=cfg.route_enabled,
            ttl=cfg.route_ttl_secs,
            refresh=cfg.route_refresh_secs,
            batch=cfg.route_batch,
            error_display_secs=cfg.route_error_secs,
        )
        self.watchlist = WatchlistMatcher(
            watchlist,
            route_lookup=self.routes.route_for,
            cooldown=cfg.notify_cooldown_secs,
        )
        self.notification_ring = NotificationRing()

        self.favorites: Set[str] = {normalize_hex(h) for h in favorites if h and h.strip()}
        self.seen_times: Dict[str, float] = {}
        self.last_update: Optional[float] = None
        self._total_count = 0
        self._last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def apply_update(self, raw: RawSnapshot, now: Optional[float] = None):
        """Fold one raw snapshot into every component."""
        now = time.time() if now is None else now

        if raw.messages is not None:
            if self.rate.update(raw.messages, now):
                COUNTER_RESETS.labels(scope="global").inc()
                logger.info(f"Global message counter reset to {raw.messages}, rate history cleared")
        else:
            self.rate.decay(now)

        self._total_count += self.aircraft_rates.update(raw, now)
        self.total_rate.update(self._total_count, now)

        for record in raw.aircraft:
            key = hex_key(record)
            if key is not None:
                self.seen_times[key] = now
        self._prune_seen(now)

        self.trends.update(raw)
        self.trails.update(raw, now)

        self._notify(self.proximity.evaluate(raw, now), "proximity")
        self._notify(self.watchlist.evaluate(raw, now), "watchlist")

        self.smoother.commit(raw)
        self._last_error = None
        self.last_update = now

        SNAPSHOTS_APPLIED.inc()
        AIRCRAFT_TRACKED.set(len(raw.aircraft))
        MESSAGE_RATE.set(self.rate.rate or 0.0)
        logger.debug(f"Applied snapshot with {len(raw.aircraft)} aircraft")

    def apply_error(self, message: str, now: Optional[float] = None):
        """Record a transient feed error; displayed state stays as it was."""
        now = time.time() if now is None else now
        self._last_error = message
        self.rate.decay(now)
        self.total_rate.decay(now)
        FEED_ERRORS.inc()
        logger.warning(f"Feed error: {message}")

    def maybe_swap_snapshot(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.smoother.maybe_swap(now)

    def _prune_seen(self, now: float):
        gone = [
            key for key, at in self.seen_times.items()
            if now - at > SEEN_RETENTION_SECS and key not in self.favorites
        ]
        for key in gone:
            del self.seen_times[key]

    def _notify(self, alerts: List[Notification], kind: str):
        if not alerts:
            return
        self.notification_ring.extend(alerts)
        NOTIFICATIONS_EMITTED.labels(kind=kind).inc(len(alerts))

    # ------------------------------------------------------------------
    # Route enrichment
    # ------------------------------------------------------------------

    def route_refresh_due(self, now: float) -> bool:
        return self.routes.poll_due(now)

    def mark_route_poll(self, now: float):
        self.routes.mark_poll(now)

    def collect_route_requests(
        self,
        visible: Optional[Iterable[AircraftRecord]] = None,
        now: Optional[float] = None,
        batch_limit: Optional[int] = None,
    ) -> List[RouteRequest]:
        """Route lookups to issue, defaulting to every displayed aircraft."""
        now = time.time() if now is None else now
        if visible is None:
            visible = self.display_snapshot.aircraft
        return self.routes.collect_requests(visible, now, batch_limit)

    def apply_routes(self, results: Iterable[RouteResult], now: Optional[float] = None):
        now = time.time() if now is None else now
        self.routes.apply_results(results, now)

    def note_route_failure(self, message: str, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.routes.note_failure(message, now)

    # ------------------------------------------------------------------
    # Renderer accessors
    # ------------------------------------------------------------------

    @property
    def display_snapshot(self) -> RawSnapshot:
        return self.smoother.display

    @property
    def raw_snapshot(self) -> RawSnapshot:
        return self.smoother.raw

    def trend_for(self, record: AircraftRecord) -> Trend:
        return self.trends.trend_for(record)

    def trail_for(self, record: AircraftRecord) -> tuple[TrailPoint, ...]:
        return self.trails.trail_for(record)

    def watch_match_for(self, record: AircraftRecord) -> Optional[WatchEntry]:
        return self.watchlist.match_for(record)

    def is_watched(self, record: AircraftRecord) -> bool:
        return self.watchlist.is_watched(record)

    def route_for(self, record: AircraftRecord) -> Optional[RouteInfo]:
        return self.routes.route_for(record)

    def route_pending(self, record: AircraftRecord, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        callsign = record.callsign or ""
        return self.routes.is_pending(callsign, now)

    @property
    def msg_rate(self) -> Optional[float]:
        return self.rate.rate

    def display_rate(self, now: Optional[float] = None) -> Optional[float]:
        """
        Rate for display: the primary estimate while it is live, else the
        coarse total built from per-aircraft counters, else whatever the
        primary still holds.
        """
        now = time.time() if now is None else now
        primary = self.rate.rate
        if primary is not None and not self.rate.is_stalled(now):
            return primary
        coarse = self.total_rate.rate
        if coarse is not None:
            return coarse
        return primary

    @property
    def avg_aircraft_rate(self) -> Optional[float]:
        return self.aircraft_rates.average()

    def aircraft_rate(self, record: AircraftRecord) -> Optional[float]:
        key = identity_key(record)
        if key is None:
            return None
        return self.aircraft_rates.rate_for(key)

    @property
    def notifications(self) -> List[Notification]:
        return self.notification_ring.items()

    @property
    def latest_notification(self) -> Optional[Notification]:
        return self.notification_ring.latest()

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def route_error(self, now: Optional[float] = None) -> Optional[str]:
        now = time.time() if now is None else now
        return self.routes.error(now)

    def route_backoff_remaining(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return self.routes.backoff_remaining(now)

    def is_favorite(self, record: AircraftRecord) -> bool:
        key = hex_key(record)
        return key is not None and key in self.favorites

    def toggle_favorite(self, record: AircraftRecord) -> bool:
        """
        Flip the favorite flag for an aircraft.

        Returns:
            The new favorite state (False for records without a hex id).
        """
        key = hex_key(record)
        if key is None:
            return False
        if key in self.favorites:
            self.favorites.remove(key)
            return False
        self.favorites.add(key)
        return True

    def last_seen(self, record: AircraftRecord) -> Optional[float]:
        key = hex_key(record)
        if key is None:
            return None
        return self.seen_times.get(key)

    def is_stale(self, record: AircraftRecord) -> bool:
        return is_stale(record, self.config.stale_secs)

    def is_low_quality(self, record: AircraftRecord) -> bool:
        return is_low_quality(record, self.config.low_nic, self.config.low_nac)

    def distance_to_site(self, record: AircraftRecord) -> Optional[float]:
        return self.proximity.distance_to(record)

    def bearing_from_site(self, record: AircraftRecord) -> Optional[float]:
        return self.proximity.bearing_to(record)
