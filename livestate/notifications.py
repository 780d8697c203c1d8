"""
Notification ring and alert cooldown bookkeeping.

Proximity and watchlist alerts share one bounded ring; each alert source
keeps its own recency map so an aircraft is announced at most once per
cooldown window.
"""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Hashable, List, Optional

from telemetry.constants import (
    NOTIFICATION_RING_SIZE,
    NOTIFY_RECENCY_FLOOR_SECS,
    NOTIFY_RECENCY_MULTIPLIER,
)

DEFAULT_COOLDOWN_SECS = 120.0


@dataclass(frozen=True)
class Notification:
    message: str
    at: float


class NotificationRing:
    """Most recent notifications, oldest dropped first."""

    def __init__(self, size: int = NOTIFICATION_RING_SIZE):
        self._items: Deque[Notification] = deque(maxlen=size)

    def push(self, notification: Notification):
        self._items.append(notification)

    def extend(self, notifications: List[Notification]):
        self._items.extend(notifications)

    def latest(self) -> Optional[Notification]:
        return self._items[-1] if self._items else None

    def items(self) -> List[Notification]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


class CooldownTracker:
    """Last-alert time per key, with periodic pruning of old entries."""

    def __init__(self, cooldown: float = DEFAULT_COOLDOWN_SECS):
        self.cooldown = cooldown if cooldown > 0 else DEFAULT_COOLDOWN_SECS
        self._last_alert: Dict[Hashable, float] = {}

    @property
    def max_age(self) -> float:
        return max(self.cooldown * NOTIFY_RECENCY_MULTIPLIER, NOTIFY_RECENCY_FLOOR_SECS)

    def prune(self, now: float):
        """Drop entries older than the retention age."""
        max_age = self.max_age
        stale = [key for key, last in self._last_alert.items() if now - last > max_age]
        for key in stale:
            del self._last_alert[key]

    def should_alert(self, key: Hashable, now: float) -> bool:
        last = self._last_alert.get(key)
        if last is None:
            return True
        return now - last >= self.cooldown

    def mark(self, key: Hashable, now: float):
        self._last_alert[key] = now

    def try_alert(self, key: Hashable, now: float) -> bool:
        """Record and return True if `key` is outside its cooldown."""
        if not self.should_alert(key, now):
            return False
        self.mark(key, now)
        return True

    def __contains__(self, key: Hashable) -> bool:
        return key in self._last_alert

    def __len__(self) -> int:
        return len(self._last_alert)
