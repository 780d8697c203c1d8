"""
Altitude and ground-speed trend classification between consecutive snapshots.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from telemetry.validation import AircraftRecord, RawSnapshot
from livestate.identity import identity_key

Number = Union[int, float]


class TrendDir(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    FLAT = "FLAT"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Trend:
    altitude: TrendDir = TrendDir.UNKNOWN
    speed: TrendDir = TrendDir.UNKNOWN


UNKNOWN_TREND = Trend()


@dataclass(frozen=True)
class _Metrics:
    alt_baro: Optional[int] = None
    gs: Optional[float] = None


def compare(previous: Optional[Number], current: Optional[Number]) -> TrendDir:
    if previous is None or current is None:
        return TrendDir.UNKNOWN
    if current > previous:
        return TrendDir.UP
    if current < previous:
        return TrendDir.DOWN
    return TrendDir.FLAT


class TrendTracker:
    """Per-aircraft trend state, independent of the rate tables."""

    def __init__(self):
        self._last_metrics: Dict[str, _Metrics] = {}
        self._trends: Dict[str, Trend] = {}

    def update(self, snapshot: RawSnapshot):
        for record in snapshot.aircraft:
            key = identity_key(record)
            if key is None:
                continue
            previous = self._last_metrics.get(key, _Metrics())
            self._trends[key] = Trend(
                altitude=compare(previous.alt_baro, record.alt_baro),
                speed=compare(previous.gs, record.gs),
            )
            # Overwrite even when a side is missing
            self._last_metrics[key] = _Metrics(alt_baro=record.alt_baro, gs=record.gs)

    def trend_for(self, record: AircraftRecord) -> Trend:
        key = identity_key(record)
        if key is None:
            return UNKNOWN_TREND
        return self._trends.get(key, UNKNOWN_TREND)
