#!/usr/bin/env python3
"""
Host loop and process entry point for the live-state engine.

The host loop is the only place engine state is mutated. Workers run on
daemon threads and talk to it exclusively through queues of immutable
values; the loop drains them without blocking, hands route batches back
out, and publishes display snapshots at the UI cadence.
"""

import logging
import queue
import signal
import threading
import time
from typing import Callable, List, Optional, Union

from prometheus_client import start_http_server

from telemetry.validation import RawSnapshot, RouteRequest, RouteResult
from livestate.config import EngineConfig, load_config
from livestate.engine import LiveStateEngine
from workers.feed_worker import SnapshotFetcher
from workers.route_worker import RouteFetcher

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECS = 0.05

FeedItem = Union[RawSnapshot, str]
RouteReply = Union[List[RouteResult], str]
DisplayCallback = Callable[[RawSnapshot], None]


class HostLoop:
    """Drains worker queues into the engine and publishes display snapshots."""

    def __init__(
        self,
        engine: LiveStateEngine,
        feed_queue: "queue.Queue[FeedItem]",
        route_request_queue: Optional["queue.Queue[List[RouteRequest]]"] = None,
        route_result_queue: Optional["queue.Queue[RouteReply]"] = None,
        on_display: Optional[DisplayCallback] = None,
    ):
        self.engine = engine
        self.feed_queue = feed_queue
        self.route_request_queue = route_request_queue
        self.route_result_queue = route_result_queue
        self.on_display = on_display
        self._published = engine.display_snapshot
        self._last_applied: Optional[float] = None

    def run_once(self, now: Optional[float] = None) -> bool:
        """
        One host tick.

        Returns:
            True if a new display snapshot was published during the tick.
        """
        now = time.time() if now is None else now

        self._drain_feed(now)
        self._drain_routes(now)
        self.engine.maybe_swap_snapshot(now)
        self._request_routes(now)

        display = self.engine.display_snapshot
        if display is self._published:
            return False
        self._published = display
        if self.on_display is not None:
            self.on_display(display)
        return True

    def _drain_feed(self, now: float):
        while True:
            try:
                item = self.feed_queue.get_nowait()
            except queue.Empty:
                return
            if isinstance(item, RawSnapshot):
                at = self._stamp(item.received_at, now)
                self.engine.apply_update(item, at)
            else:
                at = self._stamp(None, now)
                self.engine.apply_error(str(item), at)

    def _stamp(self, received_at: Optional[float], now: float) -> float:
        """Receive time of a queued item, kept between the previous item and `now`."""
        at = now if received_at is None else min(received_at, now)
        if self._last_applied is not None:
            at = max(at, self._last_applied)
        self._last_applied = at
        return at

    def _drain_routes(self, now: float):
        if self.route_result_queue is None:
            return
        while True:
            try:
                reply = self.route_result_queue.get_nowait()
            except queue.Empty:
                return
            if isinstance(reply, str):
                self.engine.note_route_failure(reply, now)
            else:
                self.engine.apply_routes(reply, now)

    def _request_routes(self, now: float):
        if self.route_request_queue is None or not self.engine.route_refresh_due(now):
            return
        self.engine.mark_route_poll(now)
        batch = self.engine.collect_route_requests(now=now)
        if batch:
            self.route_request_queue.put(batch)

    def run(self, stop_event: threading.Event, tick: float = DEFAULT_TICK_SECS):
        """Tick until `stop_event` is set."""
        logger.info("Host loop started")
        while not stop_event.is_set():
            self.run_once()
            stop_event.wait(tick)
        logger.info("Host loop stopped")


def start_metrics_server(port: int):
    """Start Prometheus metrics server in background thread."""
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")


def log_display(snapshot: RawSnapshot):
    logger.debug(f"Display snapshot: {len(snapshot.aircraft)} aircraft")


def main(config: Optional[EngineConfig] = None):
    config = config or load_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    logger.info("=" * 50)
    logger.info("ADS-B Live State Engine - Starting")
    logger.info("=" * 50)

    if config.metrics_port > 0:
        metrics_thread = threading.Thread(
            target=start_metrics_server, args=(config.metrics_port,), daemon=True
        )
        metrics_thread.start()

    feed_queue: "queue.Queue[FeedItem]" = queue.Queue()
    route_request_queue: "queue.Queue[List[RouteRequest]]" = queue.Queue()
    route_result_queue: "queue.Queue[RouteReply]" = queue.Queue()

    engine = LiveStateEngine(config)
    fetcher = SnapshotFetcher(
        config.feed_urls, feed_queue, refresh=config.refresh_secs, timeout=config.timeout_secs
    )
    route_fetcher = None
    if config.route_enabled:
        route_fetcher = RouteFetcher(
            config.route_base, route_request_queue, route_result_queue, timeout=config.route_timeout_secs
        )

    loop = HostLoop(
        engine,
        feed_queue,
        route_request_queue if route_fetcher else None,
        route_result_queue if route_fetcher else None,
        on_display=log_display,
    )

    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    fetcher.start()
    if route_fetcher:
        route_fetcher.start()

    try:
        loop.run(stop_event)
    finally:
        fetcher.stop()
        if route_fetcher:
            route_fetcher.stop()
        logger.info("ADS-B Live State Engine - Stopped")


if __name__ == "__main__":
    main()
