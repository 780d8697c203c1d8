"""
Validation library for the live-state feed contracts.

Provides Pydantic models for the raw aircraft feed, route lookups and
watchlist rules. The feed is noisy: any individual field that fails to parse
is treated as absent instead of rejecting the whole snapshot.
"""

import math
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from telemetry.constants import (
    MATCH_CALLSIGN,
    MATCH_CATEGORY,
    MATCH_HEX,
    MATCH_OWNER,
    MATCH_REGISTRATION,
    MATCH_ROUTE,
    MATCH_TYPE,
    MODE_CONTAINS,
    MODE_EXACT,
    MODE_PREFIX,
)


# ============================================================================
# Lenient field coercion
# ============================================================================

def _lenient_float(value: Any) -> Optional[float]:
    """Coerce numbers and numeric strings to float, anything else to None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _lenient_int(value: Any) -> Optional[int]:
    """Coerce to int, truncating floats. Unparseable values become None."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
    number = _lenient_float(value)
    return int(number) if number is not None else None


def _lenient_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


INT_FIELDS = (
    "alt_baro", "alt_geom", "baro_rate", "nav_altitude_mcp", "nic", "rc",
    "version", "nic_baro", "nac_p", "nac_v", "sil", "alert", "spi",
)
FLOAT_FIELDS = ("gs", "track", "nav_qnh", "lat", "lon", "seen_pos", "seen", "rssi")
STR_FIELDS = (
    "hex", "kind", "callsign", "registration", "type_code", "description",
    "operator", "year", "category", "sil_type",
)


# ============================================================================
# Feed Payload
# ============================================================================

class AircraftRecord(BaseModel):
    """One aircraft's fields in a feed snapshot. Every field is optional."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # Identity
    hex: Optional[str] = None
    kind: Optional[str] = Field(None, alias="type", description="Source type, e.g. adsb_icao")
    callsign: Optional[str] = Field(None, alias="flight")
    registration: Optional[str] = Field(None, alias="r")
    type_code: Optional[str] = Field(None, alias="t")
    description: Optional[str] = Field(None, alias="desc")
    operator: Optional[str] = Field(None, alias="ownOp")
    year: Optional[str] = None
    category: Optional[str] = None

    # Kinematics
    alt_baro: Optional[int] = None
    alt_geom: Optional[int] = None
    gs: Optional[float] = None
    track: Optional[float] = None
    baro_rate: Optional[int] = None
    nav_qnh: Optional[float] = None
    nav_altitude_mcp: Optional[int] = None

    # Positioning
    lat: Optional[float] = None
    lon: Optional[float] = None
    seen_pos: Optional[float] = None

    # Quality
    nic: Optional[int] = None
    rc: Optional[int] = None
    version: Optional[int] = None
    nic_baro: Optional[int] = None
    nac_p: Optional[int] = None
    nac_v: Optional[int] = None
    sil: Optional[int] = None
    sil_type: Optional[str] = None
    alert: Optional[int] = None
    spi: Optional[int] = None

    # Reception
    messages: Optional[int] = Field(None, description="Cumulative messages for this aircraft")
    seen: Optional[float] = None
    rssi: Optional[float] = None

    @field_validator(*INT_FIELDS, mode="before")
    @classmethod
    def parse_int(cls, v):
        """Numeric strings and floats are accepted; junk becomes None."""
        return _lenient_int(v)

    @field_validator(*FLOAT_FIELDS, mode="before")
    @classmethod
    def parse_float(cls, v):
        return _lenient_float(v)

    @field_validator(*STR_FIELDS, mode="before")
    @classmethod
    def parse_str(cls, v):
        return _lenient_str(v)

    @field_validator("messages", mode="before")
    @classmethod
    def parse_counter(cls, v):
        """Cumulative counters are unsigned."""
        count = _lenient_int(v)
        return max(count, 0) if count is not None else None

    @property
    def has_position(self) -> bool:
        return self.lat is not None and self.lon is not None


class RawSnapshot(BaseModel):
    """One poll result from the aircraft feed."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    source_time: Optional[int] = Field(None, alias="now")
    messages: Optional[int] = Field(None, description="Cumulative message counter of the source")
    aircraft: tuple[AircraftRecord, ...] = Field(
        default=(), validation_alias=AliasChoices("aircraft", "ac")
    )
    received_at: Optional[float] = Field(None, description="Local time the poll completed")

    @field_validator("source_time", mode="before")
    @classmethod
    def parse_source_time(cls, v):
        return _lenient_int(v)

    @field_validator("messages", mode="before")
    @classmethod
    def parse_messages(cls, v):
        count = _lenient_int(v)
        return max(count, 0) if count is not None else None

    @field_validator("received_at", mode="before")
    @classmethod
    def parse_received_at(cls, v):
        return _lenient_float(v)

    @field_validator("aircraft", mode="before")
    @classmethod
    def drop_non_objects(cls, v):
        """Entries that are not objects cannot describe an aircraft."""
        if not isinstance(v, (list, tuple)):
            return ()
        return tuple(item for item in v if isinstance(item, (dict, AircraftRecord)))


def seen_seconds(record: AircraftRecord) -> Optional[float]:
    """Age of the freshest information for an aircraft (position age first)."""
    if record.seen_pos is not None:
        return record.seen_pos
    return record.seen


# ============================================================================
# Route lookups
# ============================================================================

class RouteRequest(BaseModel):
    """Outgoing lookup handed to the route worker."""
    model_config = ConfigDict(frozen=True)

    callsign: str
    lat: float = 0.0
    lon: float = 0.0


class RouteResult(BaseModel):
    """One route answer from the route worker."""
    model_config = ConfigDict(frozen=True)

    callsign: str
    origin: Optional[str] = None
    destination: Optional[str] = None
    route: Optional[str] = None


# ============================================================================
# Watchlist
# ============================================================================

class MatchField(str, Enum):
    HEX = MATCH_HEX
    CALLSIGN = MATCH_CALLSIGN
    REGISTRATION = MATCH_REGISTRATION
    TYPE = MATCH_TYPE
    OWNER = MATCH_OWNER
    CATEGORY = MATCH_CATEGORY
    ROUTE = MATCH_ROUTE


class MatchMode(str, Enum):
    EXACT = MODE_EXACT
    PREFIX = MODE_PREFIX
    CONTAINS = MODE_CONTAINS


MATCH_FIELD_ALIASES = {
    "reg": MATCH_REGISTRATION,
    "r": MATCH_REGISTRATION,
    "flight": MATCH_CALLSIGN,
    "operator": MATCH_OWNER,
    "own_op": MATCH_OWNER,
    "ownop": MATCH_OWNER,
    "t": MATCH_TYPE,
}


class WatchEntry(BaseModel):
    """A user-defined watchlist rule."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Optional[str] = None
    label: Optional[str] = None
    match_type: MatchField = Field(alias="match")
    value: str
    enabled: bool = True
    notify: bool = True
    priority: int = 0
    mode: MatchMode = MatchMode.EXACT
    color: Optional[str] = None

    @field_validator("match_type", mode="before")
    @classmethod
    def normalize_match_type(cls, v):
        if isinstance(v, str):
            key = v.strip().lower()
            return MATCH_FIELD_ALIASES.get(key, key)
        return v

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v):
        if v is None:
            return MatchMode.EXACT
        if isinstance(v, str):
            return v.strip().lower() or MatchMode.EXACT
        return v

    @field_validator("enabled", "notify", mode="before")
    @classmethod
    def default_true(cls, v):
        return True if v is None else v

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, v):
        return 0 if v is None else v

    @property
    def entry_id(self) -> str:
        """Stable identifier: explicit id, else label, else field:value."""
        if self.id and self.id.strip():
            return self.id.strip()
        if self.label and self.label.strip():
            return self.label.strip()
        return f"{self.match_type.value}:{self.value}"

    @property
    def display_label(self) -> str:
        if self.label and self.label.strip():
            return self.label.strip()
        return self.entry_id


# ============================================================================
# Validation Functions
# ============================================================================

def validate_snapshot(data: dict) -> tuple[bool, Optional[RawSnapshot], Optional[str]]:
    """
    Validate a raw feed document.

    Returns:
        (is_valid, snapshot_or_none, error_message_or_none)
    """
    if not isinstance(data, dict):
        return False, None, f"Expected JSON object, got {type(data).__name__}"
    try:
        snapshot = RawSnapshot.model_validate(data)
        return True, snapshot, None
    except Exception as e:
        return False, None, str(e)


def validate_watch_entry(data: dict) -> tuple[bool, Optional[WatchEntry], Optional[str]]:
    """
    Validate a single watchlist rule.

    Returns:
        (is_valid, entry_or_none, error_message_or_none)
    """
    try:
        entry = WatchEntry.model_validate(data)
        return True, entry, None
    except Exception as e:
        return False, None, str(e)


def validate_watchlist(data: dict) -> tuple[list[WatchEntry], list[str]]:
    """
    Validate a watchlist document of the form {"watchlist": [...]}.

    Invalid rules are reported and skipped; valid ones are kept in order.

    Returns:
        (entries, error_messages)
    """
    entries: list[WatchEntry] = []
    errors: list[str] = []
    raw_entries = data.get("watchlist", []) if isinstance(data, dict) else []
    if not isinstance(raw_entries, list):
        return entries, ["watchlist must be a list"]

    for index, raw in enumerate(raw_entries):
        is_valid, entry, error = validate_watch_entry(raw)
        if is_valid:
            entries.append(entry)
        else:
            errors.append(f"entry {index}: {error}")
    return entries, errors
