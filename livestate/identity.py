"""
Stable per-aircraft keys.

Every piece of per-aircraft state is joined on the identity key: the
normalized hex id when present, else the normalized callsign.
"""

from typing import Optional

from telemetry.validation import AircraftRecord


def normalize_hex(value: str) -> str:
    return value.strip().lower()


def normalize_callsign(value: str) -> str:
    return value.strip().lower()


def identity_key(record: AircraftRecord) -> Optional[str]:
    """Return the join key for a record, or None if it has no usable identity."""
    if record.hex and record.hex.strip():
        return normalize_hex(record.hex)
    if record.callsign and record.callsign.strip():
        return normalize_callsign(record.callsign)
    return None


def hex_key(record: AircraftRecord) -> Optional[str]:
    if record.hex and record.hex.strip():
        return normalize_hex(record.hex)
    return None


def callsign_key(record: AircraftRecord) -> Optional[str]:
    if record.callsign and record.callsign.strip():
        return normalize_callsign(record.callsign)
    return None
