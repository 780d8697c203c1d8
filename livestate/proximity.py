"""
Proximity alerting relative to a fixed site.

Aircraft inside the alert radius are announced once per cooldown window;
those inside the tighter overpass radius are labelled OVER instead of NEAR.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from telemetry.constants import EARTH_RADIUS_MI, NOTIFY_PREFIX_NEAR, NOTIFY_PREFIX_OVERPASS
from telemetry.validation import AircraftRecord, RawSnapshot
from livestate.identity import identity_key
from livestate.notifications import DEFAULT_COOLDOWN_SECS, CooldownTracker, Notification

logger = logging.getLogger(__name__)

DEFAULT_NOTIFY_RADIUS_MI = 10.0
DEFAULT_OVERPASS_MI = 0.5


@dataclass(frozen=True)
class SiteLocation:
    lat: float
    lon: float
    alt_m: float = 0.0


def distance_mi(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in statute miles (haversine)."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    phi1, phi2 = math.radians(lat1), math.radians(lat2)

    a = math.sin(dlat / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlon / 2) ** 2
    return EARTH_RADIUS_MI * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from point 1 to point 2, degrees clockwise from north."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dlon = math.radians(lon2 - lon1)

    y = math.sin(dlon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


class ProximityNotifier:
    """Distance/bearing alerts with per-aircraft cooldown."""

    def __init__(
        self,
        site: Optional[SiteLocation],
        radius_mi: float = DEFAULT_NOTIFY_RADIUS_MI,
        overpass_mi: float = DEFAULT_OVERPASS_MI,
        cooldown: float = DEFAULT_COOLDOWN_SECS,
    ):
        self.site = site
        self.radius_mi = max(radius_mi, 0.1)
        self.overpass_mi = max(overpass_mi, 0.05)
        self.recency = CooldownTracker(cooldown)

    @property
    def enabled(self) -> bool:
        return self.site is not None and self.radius_mi > 0

    def distance_to(self, record: AircraftRecord) -> Optional[float]:
        if self.site is None or not record.has_position:
            return None
        return distance_mi(self.site.lat, self.site.lon, record.lat, record.lon)

    def bearing_to(self, record: AircraftRecord) -> Optional[float]:
        if self.site is None or not record.has_position:
            return None
        return bearing_deg(self.site.lat, self.site.lon, record.lat, record.lon)

    def evaluate(self, snapshot: RawSnapshot, now: float) -> List[Notification]:
        """Run one pass over a snapshot. Returns the alerts to emit."""
        if not self.enabled:
            return []

        self.recency.prune(now)
        alerts = []

        for record in snapshot.aircraft:
            distance = self.distance_to(record)
            if distance is None or distance > self.radius_mi:
                continue
            key = identity_key(record)
            if key is None:
                continue
            if not self.recency.try_alert(key, now):
                continue

            prefix = NOTIFY_PREFIX_OVERPASS if distance <= self.overpass_mi else NOTIFY_PREFIX_NEAR
            callsign = (record.callsign or "").strip() or "--"
            registration = (record.registration or "").strip() or "--"
            heading = round(self.bearing_to(record)) % 360
            message = f"{prefix} {callsign} {registration} {distance:.1f}mi {heading:03d}°"
            logger.info(f"Proximity alert: {message}")
            alerts.append(Notification(message=message, at=now))

        return alerts
