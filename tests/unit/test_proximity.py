"""
Unit tests for proximity alerts.

The reference site sits at (26.0, -80.0); one degree of latitude is about
69.09 statute miles, so 5 miles due north is roughly 0.07237 degrees.
"""

import pytest
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from telemetry.validation import AircraftRecord, RawSnapshot
from livestate.notifications import CooldownTracker, NotificationRing, Notification
from livestate.proximity import ProximityNotifier, SiteLocation, bearing_deg, distance_mi

SITE = SiteLocation(lat=26.0, lon=-80.0)
MILES_PER_DEG_LAT = 3958.8 * 3.141592653589793 / 180.0


def aircraft_north(miles: float, **fields) -> AircraftRecord:
    fields.setdefault("hex", "abc123")
    return AircraftRecord(lat=26.0 + miles / MILES_PER_DEG_LAT, lon=-80.0, **fields)


def snapshot(*records) -> RawSnapshot:
    return RawSnapshot(aircraft=tuple(records))


class TestGeometry:
    """Test haversine distance and initial bearing."""

    def test_distance_north(self):
        """Test a pure latitude offset."""
        assert distance_mi(26.0, -80.0, 26.0 + 5 / MILES_PER_DEG_LAT, -80.0) == pytest.approx(5.0, abs=1e-6)

    def test_distance_zero(self):
        assert distance_mi(26.0, -80.0, 26.0, -80.0) == 0.0

    def test_bearings(self):
        """Test cardinal bearings from the site."""
        assert bearing_deg(26.0, -80.0, 27.0, -80.0) == pytest.approx(0.0)
        assert bearing_deg(26.0, -80.0, 25.0, -80.0) == pytest.approx(180.0)
        assert bearing_deg(0.0, 0.0, 0.0, 1.0) == pytest.approx(90.0)
        assert bearing_deg(0.0, 0.0, 0.0, -1.0) == pytest.approx(270.0)


class TestProximityNotifier:
    """Test alert emission and cooldown."""

    def test_alert_inside_radius(self):
        """Test that an aircraft 5 miles out raises a NEAR alert."""
        notifier = ProximityNotifier(SITE, radius_mi=10, overpass_mi=0.5, cooldown=120)
        alerts = notifier.evaluate(snapshot(aircraft_north(5, callsign="SWA1 ", registration="N1")), 0.0)

        assert len(alerts) == 1
        assert alerts[0].message == "NEAR SWA1 N1 5.0mi 000°"
        assert alerts[0].at == 0.0

    def test_cooldown(self):
        """Test at most one alert per aircraft per cooldown window."""
        notifier = ProximityNotifier(SITE, radius_mi=10, overpass_mi=0.5, cooldown=120)
        record = aircraft_north(5)

        assert len(notifier.evaluate(snapshot(record), 0.0)) == 1
        assert notifier.evaluate(snapshot(record), 60.0) == []
        assert len(notifier.evaluate(snapshot(record), 121.0)) == 1

    def test_cooldown_boundary_with_per_second_updates(self):
        """Test one alert across 120 one-second updates, then another at exactly 120 s."""
        notifier = ProximityNotifier(SITE, radius_mi=10, overpass_mi=0.5, cooldown=120)
        record = aircraft_north(5)

        emitted = []
        for second in range(120):
            emitted.extend(notifier.evaluate(snapshot(record), float(second)))
        assert len(emitted) == 1

        emitted.extend(notifier.evaluate(snapshot(record), 120.0))
        assert len(emitted) == 2
        assert emitted[-1].at == 120.0

    def test_bearing_just_west_of_north_wraps(self):
        """Test that bearings that round to 360 are shown as 000."""
        lat = 26.0 + 5 / MILES_PER_DEG_LAT
        record = AircraftRecord(hex="abc123", lat=lat, lon=-80.00028)
        assert bearing_deg(26.0, -80.0, lat, -80.00028) > 359.5

        notifier = ProximityNotifier(SITE)
        alerts = notifier.evaluate(snapshot(record), 0.0)

        assert alerts[0].message.endswith(" 000°")

    def test_overpass_label(self):
        """Test that aircraft inside the overpass radius are labelled OVER."""
        notifier = ProximityNotifier(SITE)
        alerts = notifier.evaluate(snapshot(aircraft_north(0.2)), 0.0)

        assert alerts[0].message.startswith("OVER -- -- 0.2mi")

    def test_outside_radius(self):
        """Test that distant aircraft do not alert."""
        notifier = ProximityNotifier(SITE, radius_mi=10)

        assert notifier.evaluate(snapshot(aircraft_north(20)), 0.0) == []

    def test_requires_position_and_identity(self):
        """Test that positionless or keyless aircraft are skipped."""
        notifier = ProximityNotifier(SITE)
        records = [
            AircraftRecord(hex="a"),
            AircraftRecord(lat=26.0, lon=-80.0),
        ]

        assert notifier.evaluate(snapshot(*records), 0.0) == []

    def test_no_site(self):
        """Test that the notifier is a no-op without a site."""
        notifier = ProximityNotifier(None)

        assert not notifier.enabled
        assert notifier.evaluate(snapshot(aircraft_north(1)), 0.0) == []
        assert notifier.distance_to(aircraft_north(1)) is None

    def test_floors(self):
        """Test that tiny radii are raised to their floors."""
        notifier = ProximityNotifier(SITE, radius_mi=0.0, overpass_mi=0.0, cooldown=0)

        assert notifier.radius_mi == 0.1
        assert notifier.overpass_mi == 0.05
        assert notifier.recency.cooldown == 120.0

    def test_recency_pruned(self):
        """Test that old recency entries are pruned on the next pass."""
        notifier = ProximityNotifier(SITE, cooldown=120)
        notifier.evaluate(snapshot(aircraft_north(5)), 0.0)
        assert "abc123" in notifier.recency

        notifier.evaluate(snapshot(), 481.0)
        assert "abc123" not in notifier.recency


class TestNotificationRing:
    """Test the shared bounded ring."""

    def test_bounded(self):
        """Test that the ring keeps only the newest entries."""
        ring = NotificationRing(size=10)
        for i in range(15):
            ring.push(Notification(message=f"n{i}", at=float(i)))

        assert len(ring) == 10
        assert ring.items()[0].message == "n5"
        assert ring.latest().message == "n14"

    def test_empty(self):
        assert NotificationRing().latest() is None

    def test_cooldown_tracker_retention(self):
        """Test that retention is four cooldowns with a one-minute floor."""
        assert CooldownTracker(120).max_age == 480.0
        assert CooldownTracker(5).max_age == 60.0
