"""
Route fetch worker - resolves callsigns to origin/destination routes.

Consumes batches of RouteRequest from the request queue and answers each
batch on the result queue with either a list of RouteResult or an error
string. Rate-limit errors carry the HTTP status text (and a
`retry-after=<n>s` token when the server sent one) so the engine can back off.

The routeset endpoint has accepted several request shapes over time; each is
tried in turn until one succeeds or the server signals a rate limit.
"""

import logging
import queue
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import requests
from prometheus_client import Counter, Histogram

from telemetry.validation import RouteRequest, RouteResult
from livestate.routes import is_rate_limited

logger = logging.getLogger(__name__)

RouteReply = Union[List[RouteResult], str]

ROUTESET_PATH = "/api/0/routeset"

CALLSIGN_KEYS = ("callsign", "call", "flight", "cs")
ROUTE_KEYS = ("route", "flightroute", "_airport_codes_iata", "airport_codes")
ORIGIN_KEYS = ("origin", "orig", "from", "departure", "dep")
DESTINATION_KEYS = ("destination", "dest", "to", "arrival", "arr")
ALT_ORIGIN_KEYS = ("airport1", "from_iata", "from_icao")
ALT_DESTINATION_KEYS = ("airport2", "to_iata", "to_icao")
LIST_CONTAINER_KEYS = ("routes", "route", "data", "planes", "aircraft", "results")

FETCHES_TOTAL = Counter('route_fetches_total', 'Route batch fetches', ['status'])
FETCH_LATENCY = Histogram('route_fetch_latency_seconds', 'Route batch fetch duration')


# ============================================
# Response parsing
# ============================================

def _extract_string(obj: Dict[str, Any], keys: Sequence[str]) -> Optional[str]:
    """First non-blank string value among `keys`, trimmed."""
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def split_route(route: str) -> Optional[Tuple[str, str]]:
    """Split `"KJFK-KLAX"` into its two airports; anything else is None."""
    parts = route.split("-")
    if len(parts) != 2:
        return None
    left, right = parts[0].strip(), parts[1].strip()
    if not left or not right:
        return None
    return left, right


def parse_route_object(value: Any, key_callsign: Optional[str] = None) -> Optional[RouteResult]:
    if not isinstance(value, dict):
        return None

    callsign = _extract_string(value, CALLSIGN_KEYS) or key_callsign
    if callsign is None:
        return None

    route_text = _extract_string(value, ROUTE_KEYS)
    origin = _extract_string(value, ORIGIN_KEYS) or _extract_string(value, ALT_ORIGIN_KEYS)
    destination = _extract_string(value, DESTINATION_KEYS) or _extract_string(value, ALT_DESTINATION_KEYS)

    if origin is None and destination is None and route_text is not None:
        pair = split_route(route_text)
        if pair is not None:
            origin, destination = pair

    return RouteResult(
        callsign=callsign.strip(),
        origin=origin,
        destination=destination,
        route=route_text,
    )


def _parse_route_array(items: List[Any]) -> List[RouteResult]:
    results = []
    for item in items:
        route = parse_route_object(item)
        if route is not None:
            results.append(route)
    return results


def parse_routes(body: Any) -> List[RouteResult]:
    """
    Parse a route lookup response body.

    Accepted shapes, in order of preference:
    - a bare array of route objects
    - an object holding such an array under a well-known key
    - an object with a `routes` map of callsign -> route object or route text
    - an object keyed by callsign whose values are route objects
    """
    if isinstance(body, list):
        return _parse_route_array(body)
    if not isinstance(body, dict):
        return []

    for key in LIST_CONTAINER_KEYS:
        if isinstance(body.get(key), list):
            return _parse_route_array(body[key])

    routes = body.get("routes")
    if isinstance(routes, dict):
        mapped = []
        for key, value in routes.items():
            route = parse_route_object(value, key)
            if route is not None:
                mapped.append(route)
            elif isinstance(value, str):
                mapped.append(RouteResult(callsign=key.strip(), route=value.strip()))
        if mapped:
            return mapped

    keyed = []
    for key, value in body.items():
        if isinstance(value, dict):
            route = parse_route_object(value, key)
            if route is not None:
                keyed.append(route)
    return keyed


def routeset_payloads(batch: Sequence[RouteRequest]) -> List[Any]:
    """Request bodies to try against the routeset endpoint, most specific first."""
    callsigns = [req.callsign.strip().upper() for req in batch if req.callsign.strip()]
    planes = [
        {"callsign": req.callsign.strip().upper(), "lat": req.lat, "lng": req.lon}
        for req in batch
    ]
    return [
        {"planes": planes},
        callsigns,
        {"callsigns": callsigns},
        {"callsign": callsigns},
    ]


def _http_error(response: requests.Response) -> str:
    message = f"Route HTTP {response.status_code} {response.reason or ''}".rstrip()
    retry_after = response.headers.get("Retry-After")
    if retry_after is not None:
        try:
            message += f" retry-after={float(retry_after):g}s"
        except ValueError:
            # HTTP-date form; the engine falls back to its own backoff
            pass
    return message


# ============================================
# Worker
# ============================================

class RouteFetcher:
    """Background route resolver fed by the engine's request batches."""

    def __init__(
        self,
        base_url: str,
        request_queue: "queue.Queue[List[RouteRequest]]",
        result_queue: "queue.Queue[RouteReply]",
        timeout: float = 6.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = base_url.rstrip("/") + ROUTESET_PATH
        self.request_queue = request_queue
        self.result_queue = result_queue
        self.timeout = timeout
        self.session = session or requests.Session()
        self.running = False
        self._thread: Optional[threading.Thread] = None

    def _post(self, payload: Any) -> Tuple[Any, Optional[str]]:
        """POST one payload. Returns (decoded_body, error_message_or_none)."""
        try:
            with FETCH_LATENCY.time():
                response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            return None, f"Route request failed: {e}"

        if response.status_code != 200:
            return None, _http_error(response)

        try:
            return response.json(), None
        except ValueError as e:
            return None, f"Route response invalid JSON: {e}"

    def fetch_batch(self, batch: Sequence[RouteRequest]) -> RouteReply:
        """Resolve one batch. Returns results or an error string."""
        last_error = "Route request failed"
        for payload in routeset_payloads(batch):
            body, error = self._post(payload)
            if error is None:
                results = parse_routes(body)
                FETCHES_TOTAL.labels(status="success").inc()
                logger.debug(f"Route fetch ok: {len(results)} results")
                return results

            if is_rate_limited(error):
                FETCHES_TOTAL.labels(status="rate_limited").inc()
                logger.warning(f"Route fetch rate limited: {error}")
                return error
            last_error = error

        FETCHES_TOTAL.labels(status="error").inc()
        logger.error(f"Route fetch error: {last_error}")
        return last_error

    def _fetch_loop(self):
        logger.info(f"Starting route fetcher for {self.url}")
        while self.running:
            try:
                batch = self.request_queue.get(timeout=0.5)
            except queue.Empty:
                continue
            if not batch:
                logger.debug("Route fetch skipped (empty batch)")
                continue
            self.result_queue.put(self.fetch_batch(batch))

    def start(self):
        """Start resolving in a background thread."""
        if self.running:
            logger.warning("Route fetcher already running")
            return

        self.running = True
        self._thread = threading.Thread(target=self._fetch_loop, daemon=True)
        self._thread.start()
        logger.info("Route fetcher started")

    def stop(self):
        if not self.running:
            return

        self.running = False
        if self._thread:
            self._thread.join(timeout=5.0)
        self.session.close()
        logger.info("Route fetcher stopped")
