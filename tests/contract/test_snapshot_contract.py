"""
Contract tests for the aircraft feed snapshot.

Validates that real-world feed documents parse leniently into RawSnapshot.
These tests run independently (no network required).
"""

import json
import pytest
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from pydantic import ValidationError

from telemetry.validation import AircraftRecord, RawSnapshot, seen_seconds, validate_snapshot


def load_example(filename: str) -> dict:
    """Load example JSON file."""
    example_path = Path(__file__).parent.parent.parent / "telemetry" / "examples" / filename
    with open(example_path) as f:
        return json.load(f)


class TestSnapshotContract:
    """Test that feed documents validate into RawSnapshot."""

    def test_example_snapshot_validates(self):
        """Test that the example feed document validates."""
        example = load_example("aircraft_snapshot.json")
        is_valid, snapshot, error = validate_snapshot(example)

        assert is_valid, f"Example should validate: {error}"
        assert snapshot.source_time == 1769903354
        assert snapshot.messages == 5262546

    def test_non_object_entries_dropped(self):
        """Test that non-object aircraft entries are skipped, not fatal."""
        example = load_example("aircraft_snapshot.json")
        _, snapshot, _ = validate_snapshot(example)

        assert len(snapshot.aircraft) == 5
        assert all(isinstance(record, AircraftRecord) for record in snapshot.aircraft)

    def test_full_record_fields(self):
        """Test that wire names map onto record fields."""
        example = load_example("aircraft_snapshot.json")
        _, snapshot, _ = validate_snapshot(example)
        record = snapshot.aircraft[0]

        assert record.hex == "ac6668"
        assert record.kind == "adsb_icao"
        assert record.callsign == "SWA3576 "
        assert record.registration == "N8987Q"
        assert record.type_code == "B38M"
        assert record.operator == "SOUTHWEST AIRLINES CO"
        assert record.alt_baro == 22925
        assert record.baro_rate == -1024
        assert record.lat == 26.853891
        assert record.lon == -80.544627
        assert record.messages == 4669
        assert record.has_position

    def test_ground_altitude_becomes_none(self):
        """Test that a non-numeric altitude is treated as absent."""
        example = load_example("aircraft_snapshot.json")
        _, snapshot, _ = validate_snapshot(example)
        record = snapshot.aircraft[1]

        assert record.hex == "a716f6"
        assert record.alt_baro is None
        assert record.gs == 12.5

    def test_numeric_string_counter(self):
        """Test that numeric strings are accepted for counters."""
        example = load_example("aircraft_snapshot.json")
        _, snapshot, _ = validate_snapshot(example)

        assert snapshot.aircraft[2].messages == 42

    def test_partial_position_has_no_position(self):
        """Test that a record with only one coordinate has no position."""
        example = load_example("aircraft_snapshot.json")
        _, snapshot, _ = validate_snapshot(example)
        record = snapshot.aircraft[3]

        assert record.lat is None
        assert record.lon == -80.1
        assert not record.has_position

    def test_callsign_only_record(self):
        """Test that records without hex still parse."""
        example = load_example("aircraft_snapshot.json")
        _, snapshot, _ = validate_snapshot(example)
        record = snapshot.aircraft[4]

        assert record.hex is None
        assert record.callsign == "N123AB  "


class TestLenientParsing:
    """Test that malformed optional fields never reject the snapshot."""

    def test_wrong_types_become_none(self):
        """Test that wrongly typed fields are dropped individually."""
        is_valid, snapshot, _ = validate_snapshot({
            "now": "not-a-time",
            "aircraft": [{"hex": 123, "lat": "north", "nic": [], "flight": {"x": 1}, "gs": True}],
        })

        assert is_valid
        assert snapshot.source_time is None
        record = snapshot.aircraft[0]
        assert record.hex is None
        assert record.lat is None
        assert record.nic is None
        assert record.callsign is None
        assert record.gs is None

    def test_oversized_number_dropped_per_field(self):
        """Test that an integer too large for a float only blanks that field."""
        is_valid, snapshot, error = validate_snapshot({
            "messages": 5,
            "aircraft": [
                {"hex": "abc123", "lat": 10**400, "lon": -80.0},
                {"hex": "def456", "lat": 26.0, "lon": -80.0},
            ],
        })

        assert is_valid, f"Snapshot should validate: {error}"
        assert len(snapshot.aircraft) == 2
        assert snapshot.aircraft[0].lat is None
        assert snapshot.aircraft[0].lon == -80.0
        assert snapshot.aircraft[1].lat == 26.0

    def test_float_truncated_for_integer_fields(self):
        """Test that floats are truncated for integer fields."""
        _, snapshot, _ = validate_snapshot({"aircraft": [{"alt_baro": 1200.9, "nac_p": "9"}]})

        assert snapshot.aircraft[0].alt_baro == 1200
        assert snapshot.aircraft[0].nac_p == 9

    def test_negative_counters_clamped(self):
        """Test that unsigned counters clamp at zero."""
        _, snapshot, _ = validate_snapshot({"messages": -5, "aircraft": [{"hex": "a", "messages": -1}]})

        assert snapshot.messages == 0
        assert snapshot.aircraft[0].messages == 0

    def test_ac_alias(self):
        """Test that the alternate `ac` key is accepted for the aircraft list."""
        _, snapshot, _ = validate_snapshot({"ac": [{"hex": "abc123"}]})

        assert len(snapshot.aircraft) == 1
        assert snapshot.aircraft[0].hex == "abc123"

    def test_missing_aircraft_list(self):
        """Test that a document without aircraft yields an empty snapshot."""
        is_valid, snapshot, _ = validate_snapshot({"now": 1})

        assert is_valid
        assert snapshot.aircraft == ()

    def test_non_object_document_rejected(self):
        """Test that a non-object document fails validation."""
        is_valid, snapshot, error = validate_snapshot([1, 2, 3])

        assert not is_valid
        assert snapshot is None
        assert "list" in error

    def test_snapshot_is_immutable(self):
        """Test that snapshots cannot be mutated in place."""
        snapshot = RawSnapshot(messages=1)

        with pytest.raises(ValidationError):
            snapshot.messages = 2

    def test_seen_seconds_prefers_position_age(self):
        """Test that position age wins over the general seen age."""
        assert seen_seconds(AircraftRecord(seen_pos=1.5, seen=9.0)) == 1.5
        assert seen_seconds(AircraftRecord(seen=9.0)) == 9.0
        assert seen_seconds(AircraftRecord()) is None
