"""Pydantic domain models for bluetracker.

``ScanObservation`` is what a scanner hands to the ingestion pipeline;
``Device`` and ``Detection`` are read back from the store. All stored
models support ``from_attributes=True`` for loading from database rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bluetracker.manufacturers import format_manufacturer_data

UNKNOWN_DEVICE_NAME = "Unknown"

# Rows returned when a filter leaves the limit unset
DEFAULT_LIMIT = 50


# ---------------------------------------------------------------------------
# Scanner input
# ---------------------------------------------------------------------------


class ScanObservation(BaseModel):
    """One raw observation of a device reported by a scanner.

    ``manufacturer_data`` accepts either the stored text rendering or the
    scanner's ``{company_id: payload}`` map, which is rendered on input.
    """

    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    name: str | None = None
    rssi: int = 0
    tx_power: int = 0
    manufacturer_data: str = ""
    latitude: float | None = None
    longitude: float | None = None

    @field_validator("manufacturer_data", mode="before")
    @classmethod
    def _render_payload_map(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, dict):
            return format_manufacturer_data({int(k): v for k, v in value.items()})
        return value

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------


class Device(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    name: str = UNKNOWN_DEVICE_NAME
    manufacturer_id: int | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _unnamed(cls, value: Any) -> Any:
        # Rows written by older releases may carry NULL names
        return UNKNOWN_DEVICE_NAME if value is None else value


class Detection(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    device_address: str
    timestamp: datetime
    latitude: float | None = None
    longitude: float | None = None
    rssi: int
    tx_power: int
    manufacturer_data: str = ""

    @field_validator("manufacturer_data", mode="before")
    @classmethod
    def _null_payload(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def location(self) -> tuple[float, float] | None:
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)


class DeviceEntry(BaseModel):
    """A device together with (a window of) its detection history."""

    device: Device
    detections: list[Detection] = Field(default_factory=list)

    @property
    def address(self) -> str:
        return self.device.address


# ---------------------------------------------------------------------------
# Query options
# ---------------------------------------------------------------------------


def to_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class FilterOptions:
    """Optional history bounds; all fields combine with AND.

    ``start_time`` and ``end_time`` are inclusive. ``limit=None`` means
    ``DEFAULT_LIMIT`` rows, not unbounded.
    """

    start_time: datetime | None = None
    end_time: datetime | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValueError(f"limit must be >= 0, got {self.limit}")

    @property
    def effective_limit(self) -> int:
        return DEFAULT_LIMIT if self.limit is None else self.limit
