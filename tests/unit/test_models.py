"""Unit tests for the pydantic domain models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from bluetracker.models import Detection, Device, ScanObservation, to_utc


class TestScanObservation:
    """Scanner input validation."""

    def test_defaults(self) -> None:
        obs = ScanObservation(address="AA:BB:CC:DD:EE:FF")
        assert obs.name is None
        assert obs.rssi == 0
        assert obs.tx_power == 0
        assert obs.manufacturer_data == ""
        assert not obs.has_location

    def test_empty_address_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ScanObservation(address="")

    def test_payload_map_is_rendered(self) -> None:
        obs = ScanObservation.model_validate(
            {"address": "AA", "manufacturer_data": {"76": [2, 21, 0]}}
        )
        assert obs.manufacturer_data == "{76: [2, 21, 0]}"

    def test_null_payload_becomes_empty(self) -> None:
        obs = ScanObservation.model_validate({"address": "AA", "manufacturer_data": None})
        assert obs.manufacturer_data == ""

    def test_frozen(self) -> None:
        obs = ScanObservation(address="AA")
        with pytest.raises(ValidationError):
            obs.rssi = -40  # type: ignore[misc]

    def test_has_location_needs_both(self) -> None:
        assert not ScanObservation(address="AA", latitude=1.0).has_location
        assert ScanObservation(address="AA", latitude=1.0, longitude=2.0).has_location


class TestStoredModels:
    """Loading rows read back from SQLite."""

    def test_detection_from_row(self) -> None:
        row = {
            "id": 7,
            "device_address": "AA",
            "timestamp": "2026-03-01T08:00:00.000000+00:00",
            "latitude": None,
            "longitude": 13.4,
            "rssi": -70,
            "tx_power": 4,
            "manufacturer_data": None,
        }
        detection = Detection.model_validate(row)
        assert detection.timestamp == datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)
        assert detection.manufacturer_data == ""
        assert detection.location is None

    def test_device_null_name(self) -> None:
        device = Device.model_validate({"address": "AA", "name": None, "manufacturer_id": None})
        assert device.name == "Unknown"


def test_to_utc_naive() -> None:
    assert to_utc(datetime(2026, 1, 1)).tzinfo is timezone.utc
