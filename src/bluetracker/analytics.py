"""Visit statistics over stored device histories.

A *visit* is a run of detections of one device where consecutive
detections are no more than ``visit_gap`` apart.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from datetime import timedelta

from bluetracker.models import Detection, DeviceEntry

DEFAULT_VISIT_GAP = timedelta(minutes=30)


def split_visits(
    detections: Sequence[Detection], visit_gap: timedelta = DEFAULT_VISIT_GAP
) -> list[list[Detection]]:
    """Group detections into visits, oldest visit first."""
    ordered = sorted(detections, key=lambda d: (d.timestamp, d.id))
    visits: list[list[Detection]] = []
    for detection in ordered:
        if visits and detection.timestamp - visits[-1][-1].timestamp <= visit_gap:
            visits[-1].append(detection)
        else:
            visits.append([detection])
    return visits


def count_unique_and_returning(
    entries: Sequence[DeviceEntry], visit_gap: timedelta = DEFAULT_VISIT_GAP
) -> tuple[int, int]:
    """Return ``(unique devices, devices seen on more than one visit)``."""
    visits_by_address: dict[str, int] = {}
    for entry in entries:
        count = len(split_visits(entry.detections, visit_gap))
        visits_by_address[entry.address] = max(visits_by_address.get(entry.address, 0), count)
    returning = sum(1 for count in visits_by_address.values() if count > 1)
    return len(visits_by_address), returning


def visit_frequency(entry: DeviceEntry) -> int:
    """Number of detections recorded for the device."""
    return len(entry.detections)


def peak_visit_hour(entries: Sequence[DeviceEntry]) -> int | None:
    """UTC hour of day with the most detections; the earliest hour wins ties."""
    hours = Counter(
        detection.timestamp.hour for entry in entries for detection in entry.detections
    )
    if not hours:
        return None
    return min(hours, key=lambda hour: (-hours[hour], hour))


def average_stay_duration(entries: Sequence[DeviceEntry]) -> timedelta | None:
    """Mean span between first and last detection across devices with detections."""
    spans = [
        max(d.timestamp for d in entry.detections) - min(d.timestamp for d in entry.detections)
        for entry in entries
        if entry.detections
    ]
    if not spans:
        return None
    return sum(spans, timedelta()) / len(spans)
