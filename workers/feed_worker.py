"""
Snapshot fetch worker - polls the aircraft feed and hands results to the engine.

Every poll puts exactly one item on the output queue: a validated RawSnapshot,
or an error string describing why the poll failed. When several feed URLs are
configured, a failing URL makes the worker try the next one; the last URL that
answered is tried first on the following poll.
"""

import logging
import queue
import threading
import time
from typing import Optional, Sequence, Union

import requests
from prometheus_client import Counter, Histogram

from telemetry.validation import RawSnapshot, validate_snapshot

logger = logging.getLogger(__name__)

FeedItem = Union[RawSnapshot, str]

POLLS_TOTAL = Counter('feed_polls_total', 'Feed poll attempts', ['status'])
POLL_LATENCY = Histogram('feed_poll_latency_seconds', 'Feed poll duration')


class SnapshotFetcher:
    """Background poller for one or more aircraft.json endpoints."""

    def __init__(
        self,
        urls: Sequence[str],
        out_queue: "queue.Queue[FeedItem]",
        refresh: float = 2.0,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        if not urls:
            raise ValueError("At least one feed URL is required")
        self.urls = list(urls)
        self.out_queue = out_queue
        self.refresh = refresh
        self.timeout = timeout
        self.session = session or requests.Session()
        self.running = False
        self._index = 0
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _fetch_url(self, url: str) -> FeedItem:
        """Fetch and validate one URL. Returns a snapshot or an error string."""
        try:
            with POLL_LATENCY.time():
                response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout:
            POLLS_TOTAL.labels(status="timeout").inc()
            return f"Timeout fetching {url}"
        except requests.exceptions.RequestException as e:
            POLLS_TOTAL.labels(status="connection_error").inc()
            return f"Connection error: {e}"

        if response.status_code != 200:
            POLLS_TOTAL.labels(status="http_error").inc()
            return f"HTTP {response.status_code} {response.reason or ''}".rstrip()

        try:
            data = response.json()
        except ValueError as e:
            POLLS_TOTAL.labels(status="invalid_json").inc()
            return f"Invalid JSON: {e}"

        is_valid, snapshot, error = validate_snapshot(data)
        if not is_valid:
            POLLS_TOTAL.labels(status="invalid_payload").inc()
            return f"Invalid payload: {error}"

        POLLS_TOTAL.labels(status="success").inc()
        return snapshot.model_copy(update={"received_at": time.time()})

    def fetch_once(self) -> FeedItem:
        """Poll the feed, failing over across URLs. Returns the item to enqueue."""
        error = "No feed URL configured"
        for offset in range(len(self.urls)):
            index = (self._index + offset) % len(self.urls)
            url = self.urls[index]
            result = self._fetch_url(url)
            if isinstance(result, RawSnapshot):
                if index != self._index:
                    logger.info(f"Feed failover: now using {url}")
                self._index = index
                return result
            logger.warning(f"Feed poll failed for {url}: {result}")
            error = result
        return error

    def _poll_loop(self):
        logger.info(f"Starting feed poller for {', '.join(self.urls)}")
        while self.running:
            self.out_queue.put(self.fetch_once())
            if self.refresh > 0:
                self._wake.wait(self.refresh)

    def start(self):
        """Start polling in a background thread."""
        if self.running:
            logger.warning("Feed poller already running")
            return

        self.running = True
        self._wake.clear()
        self._thread = threading.Thread(target=self._poll_loop, daemon=True)
        self._thread.start()
        logger.info("Feed poller started")

    def stop(self):
        if not self.running:
            return

        self.running = False
        self._wake.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        self.session.close()
        logger.info("Feed poller stopped")
