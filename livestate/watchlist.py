"""
Watchlist rule matching and watchlist alerts.

Rules match one aircraft attribute exactly, by prefix, or by substring. When
several enabled rules match, the highest priority wins and ties keep the
first rule in list order. Alerts are rate limited per (rule, aircraft) pair
so one aircraft can be announced independently under different rules.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional

from telemetry.constants import NOTIFY_PREFIX_WATCH
from telemetry.validation import AircraftRecord, MatchField, MatchMode, RawSnapshot, WatchEntry
from livestate.identity import identity_key, normalize_callsign, normalize_hex
from livestate.notifications import DEFAULT_COOLDOWN_SECS, CooldownTracker, Notification
from livestate.routes import RouteInfo

logger = logging.getLogger(__name__)

RouteLookup = Callable[[AircraftRecord], Optional[RouteInfo]]


def _normalize_text(value: str) -> str:
    return value.strip().lower()


NORMALIZERS: Dict[MatchField, Callable[[str], str]] = {
    MatchField.HEX: normalize_hex,
    MatchField.CALLSIGN: normalize_callsign,
}


def normalize_value(field: MatchField, value: str) -> str:
    return NORMALIZERS.get(field, _normalize_text)(value)


def _route_text(record: AircraftRecord, route_lookup: Optional[RouteLookup]) -> Optional[str]:
    if route_lookup is None:
        return None
    info = route_lookup(record)
    return info.text if info is not None else None


FIELD_ACCESSORS: Dict[MatchField, Callable[[AircraftRecord, Optional[RouteLookup]], Optional[str]]] = {
    MatchField.HEX: lambda record, _: record.hex,
    MatchField.CALLSIGN: lambda record, _: record.callsign,
    MatchField.REGISTRATION: lambda record, _: record.registration,
    MatchField.TYPE: lambda record, _: record.type_code,
    MatchField.OWNER: lambda record, _: record.operator,
    MatchField.CATEGORY: lambda record, _: record.category,
    MatchField.ROUTE: _route_text,
}

MODE_PREDICATES: Dict[MatchMode, Callable[[str, str], bool]] = {
    MatchMode.EXACT: lambda candidate, needle: candidate == needle,
    MatchMode.PREFIX: lambda candidate, needle: candidate.startswith(needle),
    MatchMode.CONTAINS: lambda candidate, needle: needle in candidate,
}


def entry_matches(
    entry: WatchEntry,
    record: AircraftRecord,
    route_lookup: Optional[RouteLookup] = None,
) -> bool:
    """Check a single rule against a record, ignoring its enabled flag."""
    raw = FIELD_ACCESSORS[entry.match_type](record, route_lookup)
    if raw is None:
        return False
    candidate = normalize_value(entry.match_type, raw)
    needle = normalize_value(entry.match_type, entry.value)
    if not candidate or not needle:
        return False
    return MODE_PREDICATES[entry.mode](candidate, needle)


class WatchlistMatcher:
    """In-memory copy of the watchlist plus its alert cooldowns."""

    def __init__(
        self,
        entries: Iterable[WatchEntry] = (),
        route_lookup: Optional[RouteLookup] = None,
        cooldown: float = DEFAULT_COOLDOWN_SECS,
    ):
        self._entries: List[WatchEntry] = list(entries)
        self.route_lookup = route_lookup
        self.recency = CooldownTracker(cooldown)

    @property
    def entries(self) -> List[WatchEntry]:
        return list(self._entries)

    def match_for(self, record: AircraftRecord) -> Optional[WatchEntry]:
        """Highest-priority enabled rule matching the record."""
        best = None
        for entry in self._entries:
            if not entry.enabled:
                continue
            if not entry_matches(entry, record, self.route_lookup):
                continue
            if best is None or entry.priority > best.priority:
                best = entry
        return best

    def is_watched(self, record: AircraftRecord) -> bool:
        return self.match_for(record) is not None

    def evaluate(self, snapshot: RawSnapshot, now: float) -> List[Notification]:
        """Run the watchlist alert pass over a snapshot."""
        if not self._entries:
            return []

        self.recency.prune(now)
        alerts = []

        for record in snapshot.aircraft:
            key = identity_key(record)
            if key is None:
                continue
            for entry in self._entries:
                if not (entry.enabled and entry.notify):
                    continue
                if not entry_matches(entry, record, self.route_lookup):
                    continue
                if not self.recency.try_alert((entry.entry_id, key), now):
                    continue

                callsign = (record.callsign or "").strip() or "--"
                registration = (record.registration or "").strip() or "--"
                message = f"{NOTIFY_PREFIX_WATCH} {entry.display_label} {callsign} {registration}"
                logger.info(f"Watchlist alert: {message}")
                alerts.append(Notification(message=message, at=now))

        return alerts

    # ------------------------------------------------------------------
    # In-memory edits (persisting them is the caller's job)
    # ------------------------------------------------------------------

    def add_entry(self, entry: WatchEntry) -> bool:
        """Append a rule unless one with the same id already exists."""
        if self._find(entry.entry_id) is not None:
            return False
        self._entries.append(entry)
        return True

    def remove_entry(self, entry_id: str) -> bool:
        index = self._find(entry_id)
        if index is None:
            return False
        del self._entries[index]
        return True

    def set_enabled(self, entry_id: str, enabled: bool) -> bool:
        return self._update(entry_id, enabled=enabled)

    def set_notify(self, entry_id: str, notify: bool) -> bool:
        return self._update(entry_id, notify=notify)

    def _update(self, entry_id: str, **changes) -> bool:
        index = self._find(entry_id)
        if index is None:
            return False
        self._entries[index] = self._entries[index].model_copy(update=changes)
        return True

    def _find(self, entry_id: str) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.entry_id == entry_id:
                return index
        return None
