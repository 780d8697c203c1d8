"""
Unit tests for message-rate estimation.

Covers the sliding-window rate, decay during silence and counter resets.
"""

import math
import pytest
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from telemetry.validation import AircraftRecord, RawSnapshot
from livestate.rates import AircraftRateTable, RateEstimator


def snapshot_of(**counts) -> RawSnapshot:
    """Build a snapshot with one aircraft per keyword (hex=messages)."""
    return RawSnapshot(aircraft=tuple(
        AircraftRecord(hex=key, messages=count) for key, count in counts.items()
    ))


class TestRateEstimator:
    """Test the single-counter estimator."""

    def test_first_sample_has_no_rate(self):
        """Test that a lone sample only establishes the baseline."""
        estimator = RateEstimator()
        estimator.update(1000, 0.0)

        assert estimator.rate is None

    def test_steady_advance(self):
        """Test that 50 messages over one second reads 50 msg/s."""
        estimator = RateEstimator()
        estimator.update(1000, 0.0)
        estimator.update(1050, 1.0)

        assert estimator.rate == pytest.approx(50.0)

    def test_ema_smoothing(self):
        """Test that a second advance is blended into the EMA."""
        estimator = RateEstimator()
        estimator.update(0, 0.0)
        estimator.update(10, 1.0)
        estimator.update(40, 2.0)

        # inst = 0.7 * 30 + 0.3 * 30 (window pruned to the last two samples)
        assert estimator.rate == pytest.approx(0.45 * 30 + 0.55 * 10)

    def test_no_decay_within_hold(self):
        """Test that silence shorter than the hold period leaves the rate alone."""
        estimator = RateEstimator()
        estimator.update(1000, 0.0)
        estimator.update(1050, 1.0)
        estimator.update(1050, 2.5)

        assert estimator.rate == pytest.approx(50.0)

    def test_decay_after_hold(self):
        """Test that the rate decays exponentially once the hold expires."""
        estimator = RateEstimator()
        estimator.update(1000, 0.0)
        estimator.update(1050, 1.0)
        estimator.update(1050, 6.0)

        assert estimator.rate == pytest.approx(50.0 * math.exp(-1.0), rel=1e-6)
        assert estimator.rate == pytest.approx(18.39, abs=0.01)

    def test_decay_monotonic(self):
        """Test that successive decays never increase the rate."""
        estimator = RateEstimator()
        estimator.update(1000, 0.0)
        estimator.update(1050, 1.0)

        previous = estimator.rate
        for step in range(1, 40):
            estimator.decay(1.0 + step * 0.5)
            assert estimator.rate <= previous
            assert estimator.rate >= 0
            previous = estimator.rate

    def test_decay_not_double_counted(self):
        """Test that several decay calls equal one call at the same time."""
        once = RateEstimator()
        once.update(1000, 0.0)
        once.update(1050, 1.0)
        once.decay(6.0)

        stepped = RateEstimator()
        stepped.update(1000, 0.0)
        stepped.update(1050, 1.0)
        stepped.decay(4.0)
        stepped.decay(5.0)
        stepped.decay(6.0)
        stepped.decay(6.0)

        assert stepped.rate == pytest.approx(once.rate)

    def test_counter_reset(self):
        """Test that a backwards counter clears history without a negative rate."""
        estimator = RateEstimator()
        estimator.update(1000, 0.0)
        estimator.update(1050, 1.0)

        assert estimator.update(10, 2.0) is True
        assert estimator.rate is None

        estimator.update(60, 3.0)
        assert estimator.rate == pytest.approx(50.0)

    def test_is_stalled(self):
        """Test that the estimator reports silence longer than the hold."""
        estimator = RateEstimator()
        assert estimator.is_stalled(0.0)

        estimator.update(0, 0.0)
        estimator.update(10, 1.0)
        assert not estimator.is_stalled(2.0)
        assert estimator.is_stalled(3.5)

    def test_window_defaults(self):
        """Test that invalid tunables fall back to safe values."""
        estimator = RateEstimator(window=0, min_secs=0)

        assert estimator.window == pytest.approx(0.3)
        assert estimator.min_secs == pytest.approx(0.05)
        assert estimator.hold == pytest.approx(2.0)
        assert estimator.tau == pytest.approx(3.0)


class TestAircraftRateTable:
    """Test per-aircraft estimators keyed by identity."""

    def test_per_aircraft_rates(self):
        """Test that each aircraft gets its own rate."""
        table = AircraftRateTable()
        table.update(snapshot_of(a=100, b=10), 0.0)
        table.update(snapshot_of(a=150, b=20), 1.0)

        assert table.rate_for("a") == pytest.approx(50.0)
        assert table.rate_for("b") == pytest.approx(10.0)
        assert table.average() == pytest.approx(30.0)

    def test_total_delta(self):
        """Test that update returns the sum of positive deltas."""
        table = AircraftRateTable()

        assert table.update(snapshot_of(a=100, b=10), 0.0) == 0
        assert table.update(snapshot_of(a=150, b=20), 1.0) == 60

    def test_absent_keys_dropped(self):
        """Test that aircraft missing from a snapshot are forgotten."""
        table = AircraftRateTable()
        table.update(snapshot_of(a=100, b=10), 0.0)
        table.update(snapshot_of(a=150), 1.0)

        assert "a" in table
        assert "b" not in table
        assert len(table) == 1

    def test_reset_contributes_no_delta(self):
        """Test that a per-aircraft counter reset never adds a negative delta."""
        table = AircraftRateTable()
        table.update(snapshot_of(a=100), 0.0)

        assert table.update(snapshot_of(a=5), 1.0) == 0
        assert table.rate_for("a") is None

    def test_average_empty(self):
        """Test that no tracked rates means no average."""
        assert AircraftRateTable().average() is None
