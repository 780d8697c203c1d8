"""
Per-aircraft data quality flags used by the renderer.
"""

from typing import Optional

from telemetry.validation import AircraftRecord, seen_seconds

DEFAULT_STALE_SECS = 60.0
DEFAULT_LOW_NIC = 5
DEFAULT_LOW_NAC = 8


def is_stale(record: AircraftRecord, stale_secs: float = DEFAULT_STALE_SECS) -> bool:
    """True once the freshest information for the aircraft is `stale_secs` old."""
    age: Optional[float] = seen_seconds(record)
    return age is not None and age >= stale_secs


def is_low_quality(
    record: AircraftRecord,
    low_nic: int = DEFAULT_LOW_NIC,
    low_nac: int = DEFAULT_LOW_NAC,
) -> bool:
    # Integrity or accuracy below threshold; unknown values are not flagged
    if record.nic is not None and record.nic < low_nic:
        return True
    if record.nac_p is not None and record.nac_p < low_nac:
        return True
    return False
