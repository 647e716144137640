"""Tests for visit statistics."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from bluetracker.analytics import (
    average_stay_duration,
    count_unique_and_returning,
    peak_visit_hour,
    split_visits,
    visit_frequency,
)
from bluetracker.models import Detection, Device, DeviceEntry

BASE = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _entry(address: str, *offsets_minutes: int) -> DeviceEntry:
    detections = [
        Detection(
            id=i + 1,
            device_address=address,
            timestamp=BASE + timedelta(minutes=offset),
            rssi=-60,
            tx_power=0,
        )
        for i, offset in enumerate(offsets_minutes)
    ]
    return DeviceEntry(device=Device(address=address), detections=detections)


class TestSplitVisits:
    def test_close_detections_form_one_visit(self) -> None:
        entry = _entry("a", 0, 10, 40)
        assert len(split_visits(entry.detections)) == 1

    def test_gap_starts_new_visit(self) -> None:
        entry = _entry("a", 0, 31, 200)
        visits = split_visits(entry.detections)
        assert [len(v) for v in visits] == [1, 1, 1]

    def test_gap_boundary_is_same_visit(self) -> None:
        entry = _entry("a", 0, 30)
        assert len(split_visits(entry.detections)) == 1

    def test_input_order_does_not_matter(self) -> None:
        entry = _entry("a", 200, 0, 10)
        visits = split_visits(entry.detections)
        assert [len(v) for v in visits] == [2, 1]
        assert visits[0][0].timestamp == BASE

    def test_custom_gap(self) -> None:
        entry = _entry("a", 0, 10)
        assert len(split_visits(entry.detections, timedelta(minutes=5))) == 2

    def test_empty(self) -> None:
        assert split_visits([]) == []


class TestCounts:
    def test_unique_and_returning(self) -> None:
        entries = [_entry("a", 0, 120), _entry("b", 0, 5), _entry("c")]
        assert count_unique_and_returning(entries) == (3, 1)

    def test_visit_frequency(self) -> None:
        assert visit_frequency(_entry("a", 0, 1, 2)) == 3


class TestPeakAndStay:
    def test_peak_hour(self) -> None:
        entries = [_entry("a", 0, 60, 65), _entry("b", 70)]
        assert peak_visit_hour(entries) == 10

    def test_peak_hour_tie_takes_earliest(self) -> None:
        entries = [_entry("a", 0, 60)]
        assert peak_visit_hour(entries) == 9

    def test_peak_hour_empty(self) -> None:
        assert peak_visit_hour([]) is None
        assert peak_visit_hour([_entry("a")]) is None

    def test_average_stay(self) -> None:
        entries = [_entry("a", 0, 20), _entry("b", 0, 40), _entry("c")]
        assert average_stay_duration(entries) == timedelta(minutes=30)

    def test_average_stay_single_detection(self) -> None:
        assert average_stay_duration([_entry("a", 5)]) == timedelta(0)

    def test_average_stay_empty(self) -> None:
        assert average_stay_duration([]) is None
