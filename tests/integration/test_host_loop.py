"""
Integration tests for the host loop.

Drives LiveStateEngine through HostLoop with real queues, standing in for
the feed and route workers by putting items on the queues directly.
"""

import queue
import threading

import pytest
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from telemetry.validation import AircraftRecord, RawSnapshot, RouteResult
from livestate.config import EngineConfig
from livestate.engine import LiveStateEngine
from livestate.run import HostLoop

UAL = AircraftRecord(hex="a1b2c3", callsign="UAL1", lat=26.0, lon=-80.0, messages=10)


def make_loop(config=None, on_display=None):
    engine = LiveStateEngine(config or EngineConfig())
    feed_q, request_q, result_q = queue.Queue(), queue.Queue(), queue.Queue()
    loop = HostLoop(engine, feed_q, request_q, result_q, on_display=on_display)
    return loop, engine, feed_q, request_q, result_q


class TestFeedDrain:
    """Test snapshot and error delivery from the feed queue."""

    def test_snapshot_published(self):
        """Test that a queued snapshot reaches the display on the next tick."""
        displayed = []
        loop, engine, feed_q, _, _ = make_loop(on_display=displayed.append)
        feed_q.put(RawSnapshot(messages=100, aircraft=(UAL,)))

        assert loop.run_once(0.0)
        assert engine.display_snapshot.aircraft[0].hex == "a1b2c3"
        assert displayed[-1] is engine.display_snapshot

    def test_all_queued_items_drained(self):
        """Test that every queued item is applied in order within one tick."""
        loop, engine, feed_q, _, _ = make_loop()
        feed_q.put(RawSnapshot(messages=100))
        feed_q.put(RawSnapshot(messages=150))

        loop.run_once(0.0)

        assert feed_q.empty()
        assert engine.raw_snapshot.messages == 150

    def test_backlog_applied_at_receive_times(self):
        """Test that snapshots queued during a stall keep their own timing."""
        loop, engine, feed_q, _, _ = make_loop()
        feed_q.put(RawSnapshot(messages=100, received_at=10.0))
        feed_q.put(RawSnapshot(messages=150, received_at=11.0))

        loop.run_once(11.5)

        assert engine.msg_rate == pytest.approx(50.0)
        assert engine.last_update == 11.0

    def test_receive_time_never_ahead_of_tick(self):
        loop, engine, feed_q, _, _ = make_loop()
        feed_q.put(RawSnapshot(messages=1, received_at=99.0))

        loop.run_once(5.0)

        assert engine.last_update == 5.0

    def test_error_keeps_display(self):
        """Test that a feed error is recorded without touching the display."""
        loop, engine, feed_q, _, _ = make_loop()
        feed_q.put(RawSnapshot(messages=100, aircraft=(UAL,)))
        loop.run_once(0.0)
        before = engine.display_snapshot

        feed_q.put("HTTP 503 Service Unavailable")
        loop.run_once(1.0)

        assert engine.last_error == "HTTP 503 Service Unavailable"
        assert engine.display_snapshot.aircraft == before.aircraft

    def test_next_snapshot_clears_error(self):
        loop, engine, feed_q, _, _ = make_loop()
        feed_q.put("HTTP 503 Service Unavailable")
        feed_q.put(RawSnapshot(messages=1))
        loop.run_once(0.0)

        assert engine.last_error is None

    def test_no_callback_without_change(self):
        """Test that ticks without a new display do not invoke the callback."""
        displayed = []
        loop, _, feed_q, _, _ = make_loop(EngineConfig(smooth_merge=False), on_display=displayed.append)
        feed_q.put(RawSnapshot(messages=1))
        loop.run_once(0.0)
        count = len(displayed)

        loop.run_once(1.0)
        assert len(displayed) == count

    def test_immediate_publish_without_smoothing(self):
        """Test that the display follows the raw feed when smoothing is off."""
        loop, engine, feed_q, _, _ = make_loop(EngineConfig(smooth_mode=False))
        feed_q.put(RawSnapshot(messages=7))

        assert loop.run_once(0.0)
        assert engine.display_snapshot.messages == 7


class TestRouteFlow:
    """Test route request batches and their answers."""

    def test_request_and_answer(self):
        """Test that displayed callsigns are requested and answers cached."""
        loop, engine, feed_q, request_q, result_q = make_loop()
        feed_q.put(RawSnapshot(messages=1, aircraft=(UAL,)))
        loop.run_once(0.0)

        batch = request_q.get_nowait()
        assert [r.callsign for r in batch] == ["UAL1"]
        assert engine.route_pending(UAL, now=0.2)

        result_q.put([RouteResult(callsign="UAL1", origin="KSFO", destination="KEWR")])
        loop.run_once(0.3)

        assert engine.route_for(UAL).text == "KSFO-KEWR"
        assert not engine.route_pending(UAL, now=0.4)

    def test_poll_cadence(self):
        """Test that route batches are only issued once per refresh interval."""
        loop, engine, feed_q, request_q, _ = make_loop(EngineConfig(route_refresh_secs=15))
        loop.run_once(0.0)
        feed_q.put(RawSnapshot(messages=1, aircraft=(UAL,)))
        loop.run_once(1.0)
        loop.run_once(5.0)

        assert request_q.empty()

        loop.run_once(15.0)
        assert not request_q.empty()

    def test_rate_limit_backs_off(self):
        """Test that a rate-limit reply suspends further requests."""
        loop, engine, feed_q, request_q, result_q = make_loop(EngineConfig(route_refresh_secs=0))
        result_q.put("Route HTTP 429 Too Many Requests retry-after=30s")
        feed_q.put(RawSnapshot(messages=1, aircraft=(UAL,)))
        loop.run_once(0.0)
        loop.run_once(1.0)

        assert engine.route_backoff_remaining(1.0) == 29.0
        assert engine.route_error(1.0).startswith("Route HTTP 429")
        assert request_q.empty()

    def test_routes_disabled(self):
        loop, _, feed_q, request_q, _ = make_loop(EngineConfig(route_enabled=False))
        feed_q.put(RawSnapshot(messages=1, aircraft=(UAL,)))
        loop.run_once(0.0)
        loop.run_once(20.0)

        assert request_q.empty()


class TestRunLoop:
    def test_stops_on_event(self):
        """Test that run() returns once the stop event is set."""
        loop, engine, feed_q, _, _ = make_loop()
        feed_q.put(RawSnapshot(messages=1))
        stop = threading.Event()

        worker = threading.Thread(target=loop.run, args=(stop, 0.01))
        worker.start()
        stop.set()
        worker.join(timeout=2.0)

        assert not worker.is_alive()
