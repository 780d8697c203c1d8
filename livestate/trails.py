"""
Bounded position history per aircraft.
"""

from typing import Dict, List, NamedTuple, Tuple

from telemetry.constants import TRAIL_EPSILON_DEG
from telemetry.validation import AircraftRecord, RawSnapshot
from livestate.identity import identity_key

DEFAULT_TRAIL_LEN = 6


class TrailPoint(NamedTuple):
    lat: float
    lon: float
    at: float


class TrailBuffer:
    """Oldest-first trail of positions, deduplicated and capped per aircraft."""

    def __init__(self, max_len: int = DEFAULT_TRAIL_LEN):
        self.max_len = max(max_len, 1)
        self._trails: Dict[str, List[TrailPoint]] = {}

    def update(self, snapshot: RawSnapshot, now: float):
        for record in snapshot.aircraft:
            key = identity_key(record)
            if key is None or not record.has_position:
                continue
            self.append(key, record.lat, record.lon, now)

    def append(self, key: str, lat: float, lon: float, at: float) -> bool:
        """Append a point unless it repeats the last one. Returns True if stored."""
        trail = self._trails.setdefault(key, [])
        if trail:
            last = trail[-1]
            if abs(last.lat - lat) < TRAIL_EPSILON_DEG and abs(last.lon - lon) < TRAIL_EPSILON_DEG:
                return False

        trail.append(TrailPoint(lat, lon, at))
        if len(trail) > self.max_len:
            self._trails[key] = trail[-self.max_len:]
        return True

    def trail_for(self, record: AircraftRecord) -> Tuple[TrailPoint, ...]:
        key = identity_key(record)
        if key is None:
            return ()
        return tuple(self._trails.get(key, ()))

    def trail_for_key(self, key: str) -> Tuple[TrailPoint, ...]:
        return tuple(self._trails.get(key, ()))
