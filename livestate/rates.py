"""
Message-rate estimation over monotonic cumulative counters.

The feed reports cumulative message counts (globally and per aircraft).
Rates are derived from consecutive samples, blended with a short sliding
window and smoothed with an EMA. During silence the estimate decays toward
zero instead of dropping to "no data"; a counter that goes backwards is a
source restart and clears the accumulated history.
"""

import logging
import math
from collections import deque
from typing import Deque, Dict, Optional, Tuple

from telemetry.constants import (
    RATE_EMA_ALPHA,
    RATE_HOLD_FLOOR_SECS,
    RATE_SHORT_WEIGHT,
    RATE_TAU_FLOOR_SECS,
    RATE_WINDOW_WEIGHT,
)
from telemetry.validation import RawSnapshot
from livestate.identity import identity_key
from livestate.metrics import COUNTER_RESETS

logger = logging.getLogger(__name__)

DEFAULT_RATE_WINDOW_SECS = 0.3
DEFAULT_RATE_MIN_SECS = 0.25
MIN_RATE_MIN_SECS = 0.05


class RateEstimator:
    """Windowed, EMA-smoothed rate of a single cumulative counter."""

    def __init__(self, window: float = DEFAULT_RATE_WINDOW_SECS, min_secs: float = DEFAULT_RATE_MIN_SECS):
        self.window = window if window > 0 else DEFAULT_RATE_WINDOW_SECS
        self.min_secs = max(min_secs, MIN_RATE_MIN_SECS)
        self.samples: Deque[Tuple[float, int]] = deque()
        self.last_count: Optional[int] = None
        self.last_time: Optional[float] = None
        self.instant: Optional[float] = None
        self.ema: Optional[float] = None
        self.last_advance: Optional[float] = None
        self.last_decay: Optional[float] = None

    @property
    def rate(self) -> Optional[float]:
        return self.ema

    @property
    def hold(self) -> float:
        """Silence tolerated before the estimate starts to decay."""
        return max(2 * self.window, RATE_HOLD_FLOOR_SECS)

    @property
    def tau(self) -> float:
        return max(4 * self.window, RATE_TAU_FLOOR_SECS)

    def reset(self):
        """Forget short-window history and the EMA."""
        self.samples.clear()
        self.instant = None
        self.ema = None
        self.last_advance = None
        self.last_decay = None

    def update(self, count: int, now: float) -> bool:
        """
        Fold one cumulative count observed at `now`.

        Returns:
            True if the counter went backwards and the estimator was reset.
        """
        previous = self.last_count
        was_reset = False
        if previous is not None and count < previous:
            self.reset()
            was_reset = True
            previous = None

        self.last_count = count
        self.last_time = now
        self.samples.append((now, count))
        self._prune(now)

        if previous is None or count <= previous:
            self.decay(now)
            return was_reset

        inst = self._instant_rate()
        if inst is None or inst <= 0:
            self.decay(now)
            return was_reset

        self.instant = inst
        if self.ema is None:
            self.ema = inst
        else:
            self.ema = RATE_EMA_ALPHA * inst + (1 - RATE_EMA_ALPHA) * self.ema
        self.last_advance = now
        self.last_decay = None
        return was_reset

    def decay(self, now: float):
        """Exponentially decay the estimate once the hold period has passed."""
        if self.ema is None or self.last_advance is None:
            return
        if now - self.last_advance <= self.hold:
            return

        start = self.last_advance + self.hold
        if self.last_decay is not None:
            start = max(start, self.last_decay)
        elapsed = now - start
        if elapsed <= 0:
            return

        self.ema *= math.exp(-elapsed / self.tau)
        self.last_decay = now

    def is_stalled(self, now: float) -> bool:
        if self.last_advance is None:
            return True
        return now - self.last_advance > self.hold

    def _prune(self, now: float):
        # The last two samples always survive so a short rate exists.
        while len(self.samples) > 2 and now - self.samples[0][0] > self.window:
            self.samples.popleft()

    def _instant_rate(self) -> Optional[float]:
        if len(self.samples) < 2:
            return None

        t0, m0 = self.samples[-2]
        t1, m1 = self.samples[-1]
        short = max(m1 - m0, 0) / max(t1 - t0, self.min_secs * 0.5)

        tw, mw = self.samples[0]
        window = max(m1 - mw, 0) / max(t1 - tw, self.min_secs)

        return RATE_SHORT_WEIGHT * short + RATE_WINDOW_WEIGHT * window


class AircraftRateTable:
    """Per-aircraft rate estimators keyed by identity."""

    def __init__(self, window: float = DEFAULT_RATE_WINDOW_SECS, min_secs: float = DEFAULT_RATE_MIN_SECS):
        self.window = window
        self.min_secs = min_secs
        self._rates: Dict[str, RateEstimator] = {}

    def update(self, snapshot: RawSnapshot, now: float) -> int:
        """
        Fold every aircraft's own message counter.

        Keys missing from the snapshot are dropped afterwards.

        Returns:
            Total positive counter delta across all aircraft in this snapshot.
        """
        present = set()
        total_delta = 0

        for record in snapshot.aircraft:
            key = identity_key(record)
            if key is None:
                continue
            present.add(key)

            estimator = self._rates.get(key)
            if record.messages is None:
                if estimator is not None:
                    estimator.decay(now)
                continue

            if estimator is None:
                estimator = RateEstimator(self.window, self.min_secs)
                self._rates[key] = estimator

            previous = estimator.last_count
            if estimator.update(record.messages, now):
                COUNTER_RESETS.labels(scope="aircraft").inc()
                logger.debug(f"Message counter reset for {key}")
            elif previous is not None and record.messages > previous:
                total_delta += record.messages - previous

        for key in [k for k in self._rates if k not in present]:
            del self._rates[key]

        return total_delta

    def rate_for(self, key: str) -> Optional[float]:
        estimator = self._rates.get(key)
        return estimator.rate if estimator is not None else None

    def average(self) -> Optional[float]:
        """Mean of all currently tracked, non-null per-aircraft rates."""
        rates = [e.rate for e in self._rates.values() if e.rate is not None]
        if not rates:
            return None
        return sum(rates) / len(rates)

    def __contains__(self, key: str) -> bool:
        return key in self._rates

    def __len__(self) -> int:
        return len(self._rates)
