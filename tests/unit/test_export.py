"""Tests for saving observations to JSON files."""

from __future__ import annotations

import json
import pathlib
from datetime import datetime

from bluetracker.export import save_observations, timestamped_path
from bluetracker.models import ScanObservation

NOW = datetime(2026, 3, 1, 14, 5, 9)


def test_timestamped_path() -> None:
    assert timestamped_path("scans/out.json", NOW) == pathlib.Path("scans/out_20260301_140509.json")


def test_timestamped_path_without_suffix() -> None:
    assert timestamped_path("scan", NOW) == pathlib.Path("scan_20260301_140509")


def test_save_observations(tmp_path: pathlib.Path) -> None:
    observations = [
        ScanObservation(address="AA:BB", name="Phone", rssi=-50, latitude=1.0, longitude=2.0),
        ScanObservation(address="CC:DD", manufacturer_data="{76: [2]}"),
    ]
    path = save_observations(tmp_path / "nested" / "scan.json", observations, now=NOW)

    assert path == tmp_path / "nested" / "scan_20260301_140509.json"
    data = json.loads(path.read_text())
    assert [item["address"] for item in data] == ["AA:BB", "CC:DD"]
    assert data[0]["latitude"] == 1.0
    assert data[1]["manufacturer_data"] == "{76: [2]}"


def test_saved_file_reloads(tmp_path: pathlib.Path) -> None:
    original = [ScanObservation(address="AA:BB", rssi=-70, tx_power=4)]
    path = save_observations(tmp_path / "scan.json", original, now=NOW)
    reloaded = [ScanObservation.model_validate(item) for item in json.loads(path.read_text())]
    assert reloaded == original
