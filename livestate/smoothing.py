"""
Display snapshot smoothing for noisy feeds.

The renderer never reads the raw feed directly. The latest raw snapshot is
republished as the display snapshot at a capped cadence, optionally
field-merged with the previous display snapshot so that values which
transiently disappear from the source do not flicker to blank.
"""

import logging
from typing import Dict, Optional

from telemetry.validation import STR_FIELDS, AircraftRecord, RawSnapshot
from livestate.identity import identity_key
from livestate.metrics import DISPLAY_SWAPS

logger = logging.getLogger(__name__)

DEFAULT_UI_FPS = 10


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def fill_record(target: AircraftRecord, previous: AircraftRecord) -> AircraftRecord:
    """Fill null/blank fields of `target` from `previous`, never overwriting."""
    updates = {}
    for name in AircraftRecord.model_fields:
        current = getattr(target, name)
        old = getattr(previous, name)
        if name in STR_FIELDS:
            if _is_blank(current) and not _is_blank(old):
                updates[name] = old.strip()
        elif current is None and old is not None:
            updates[name] = old

    if not updates:
        return target
    return target.model_copy(update=updates)


def merge_snapshot(new: RawSnapshot, previous: Optional[RawSnapshot]) -> RawSnapshot:
    """Build a new snapshot with gaps in `new` filled from `previous`."""
    if previous is None:
        return new

    by_key: Dict[str, AircraftRecord] = {}
    for record in previous.aircraft:
        key = identity_key(record)
        if key is not None:
            by_key.setdefault(key, record)

    merged = []
    for record in new.aircraft:
        key = identity_key(record)
        old = by_key.get(key) if key is not None else None
        merged.append(fill_record(record, old) if old is not None else record)

    return new.model_copy(update={
        "source_time": new.source_time if new.source_time is not None else previous.source_time,
        "messages": new.messages if new.messages is not None else previous.messages,
        "aircraft": tuple(merged),
    })


class SnapshotSmoother:
    """Holds the latest raw snapshot and the published display snapshot."""

    def __init__(self, smooth_mode: bool = True, smooth_merge: bool = True, ui_fps: int = DEFAULT_UI_FPS):
        self.smooth_mode = smooth_mode
        self.smooth_merge = smooth_merge
        self.ui_interval = 0.0 if ui_fps <= 0 else 1.0 / ui_fps
        self.raw = RawSnapshot()
        self.display = RawSnapshot()
        self.last_swap: Optional[float] = None

    def commit(self, raw: RawSnapshot):
        """Store the latest raw snapshot; publish at once when smoothing is off."""
        self.raw = raw
        if not self.smooth_mode:
            self.publish()

    def maybe_swap(self, now: float) -> bool:
        """
        Publish the display snapshot if the UI interval has elapsed.

        Returns:
            True if a new display snapshot was published.
        """
        if not self.smooth_mode:
            return False
        if self.ui_interval > 0 and self.last_swap is not None:
            if now - self.last_swap < self.ui_interval:
                return False
        self.publish()
        self.last_swap = now
        return True

    def publish(self):
        if self.smooth_merge:
            self.display = merge_snapshot(self.raw, self.display)
        else:
            self.display = self.raw
        DISPLAY_SWAPS.inc()
        logger.debug(f"Published display snapshot with {len(self.display.aircraft)} aircraft")
