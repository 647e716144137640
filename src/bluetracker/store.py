"""Detection store: persistent devices, append-only detections, geo queries.

A ``DetectionStore`` owns one aiosqlite connection. Callers open it, pass
the handle to whatever needs it, and close it when done; there is no
module-level connection.

Write path::

    observation -> existence check -> insert device if absent
                -> append detection (timestamped by the store)

Read path: history, last known location, device listing, and proximity
search (bounding-box pre-filter in SQL, exact haversine check in Python).
"""

from __future__ import annotations

import hashlib
import logging
import math
import pathlib
import sqlite3
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import aiosqlite

from bluetracker.db import queries
from bluetracker.db.filters import detection_filter, device_filter, format_timestamp
from bluetracker.db.migrations import apply_migrations
from bluetracker.exceptions import StorageError
from bluetracker.geo import bounding_box, haversine_distance
from bluetracker.manufacturers import resolve_manufacturer_id
from bluetracker.models import (
    UNKNOWN_DEVICE_NAME,
    Detection,
    Device,
    DeviceEntry,
    FilterOptions,
    ScanObservation,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_address(address: str) -> str:
    """SHA-256 hex digest used as the stored key when hashing is enabled."""
    return hashlib.sha256(address.encode("utf-8")).hexdigest()


@asynccontextmanager
async def _storage_errors(operation: str) -> AsyncIterator[None]:
    """Re-raise engine failures as ``StorageError``."""
    try:
        yield
    except sqlite3.Error as exc:
        raise StorageError(f"{operation} failed: {exc}", operation=operation) from exc


class DetectionStore:
    """Device and detection store backed by a single SQLite file.

    Parameters
    ----------
    db:
        Open aiosqlite connection with migrations applied.
    hash_addresses:
        Store SHA-256 digests instead of plaintext addresses.
    clock:
        Source of detection timestamps. Defaults to the current UTC time.
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        *,
        hash_addresses: bool = False,
        clock: Clock | None = None,
    ) -> None:
        self._db = db
        self._hash_addresses = hash_addresses
        self._clock = clock or _utcnow

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        path: pathlib.Path | str,
        *,
        hash_addresses: bool = False,
        clock: Clock | None = None,
    ) -> DetectionStore:
        """Open or create the database at *path* and apply pending migrations.

        ``":memory:"`` opens a private in-memory database.
        """
        target = str(path)
        async with _storage_errors("open"):
            if target != ":memory:":
                try:
                    pathlib.Path(target).expanduser().parent.mkdir(parents=True, exist_ok=True)
                except OSError as exc:
                    raise StorageError(
                        f"open failed: cannot create directory for {target}: {exc}",
                        operation="open",
                    ) from exc
                target = str(pathlib.Path(target).expanduser())
            db = await aiosqlite.connect(target)
            try:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys = ON")
                await apply_migrations(db)
            except BaseException:
                await db.close()
                raise
        logger.debug("Opened detection store at %s", target)
        return cls(db, hash_addresses=hash_addresses, clock=clock)

    async def close(self) -> None:
        await self._db.close()

    async def __aenter__(self) -> DetectionStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._db

    @property
    def hash_addresses(self) -> bool:
        return self._hash_addresses

    def device_key(self, address: str) -> str:
        """Return the stored key for a raw device address."""
        return hash_address(address) if self._hash_addresses else address

    # -----------------------------------------------------------------------
    # Write path
    # -----------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Commit everything written inside the block, or roll all of it back."""
        async with _storage_errors("transaction"):
            try:
                yield self._db
                await self._db.commit()
            except BaseException:
                logger.warning("Rolling back detection store transaction")
                await self._db.rollback()
                raise

    async def write_observation(
        self, observation: ScanObservation, manufacturer_id: int | None = None
    ) -> bool:
        """Persist one observation; must run inside ``transaction()``.

        Creates the device row on first sighting (name is first-write-wins),
        then appends a detection stamped with the store clock. Returns
        ``True`` when a device row was created.
        """
        key = self.device_key(observation.address)
        created = False

        existing = await queries.get_device(self._db, key)
        if existing is None and self._hash_addresses:
            # Plaintext row left by an earlier unhashed run
            if await queries.get_device(self._db, observation.address) is not None:
                await queries.rekey_device(self._db, observation.address, key)
                existing = await queries.get_device(self._db, key)

        if existing is None:
            await queries.insert_device(
                self._db,
                address=key,
                name=observation.name or UNKNOWN_DEVICE_NAME,
                manufacturer_id=manufacturer_id,
            )
            created = True
        elif manufacturer_id is not None and existing["manufacturer_id"] != manufacturer_id:
            await queries.set_device_manufacturer(self._db, key, manufacturer_id)

        await queries.insert_detection(
            self._db,
            device_address=key,
            timestamp=format_timestamp(self._clock()),
            latitude=observation.latitude,
            longitude=observation.longitude,
            rssi=observation.rssi,
            tx_power=observation.tx_power,
            manufacturer_data=observation.manufacturer_data,
        )
        return created

    async def record_detection(self, observation: ScanObservation) -> bool:
        """Store a single observation atomically. Returns whether the device is new."""
        manufacturer_id = resolve_manufacturer_id(observation.manufacturer_data)
        async with self.transaction():
            return await self.write_observation(observation, manufacturer_id)

    # -----------------------------------------------------------------------
    # Read path
    # -----------------------------------------------------------------------

    async def get_device(self, address: str) -> Device | None:
        async with _storage_errors("get_device"):
            row = await queries.get_device(self._db, self.device_key(address))
        return Device.model_validate(row) if row is not None else None

    async def history(
        self, address: str, filters: FilterOptions | None = None
    ) -> list[Detection]:
        """Detections of *address* inside the filter window, newest first."""
        filters = filters or FilterOptions()
        where = detection_filter(self.device_key(address), filters)
        async with _storage_errors("history"):
            rows = await queries.list_detections(self._db, where, limit=filters.effective_limit)
        return [Detection.model_validate(row) for row in rows]

    async def last_known_location(self, address: str) -> tuple[float, float] | None:
        """Coordinates of the newest detection carrying a location, if any."""
        async with _storage_errors("last_known_location"):
            return await queries.latest_location(self._db, self.device_key(address))

    async def devices(
        self,
        filters: FilterOptions | None = None,
        manufacturer_id: int | None = None,
    ) -> list[Device]:
        """List devices, optionally for one manufacturer; history not populated."""
        filters = filters or FilterOptions()
        where = device_filter(filters, manufacturer_id)
        async with _storage_errors("devices"):
            rows = await queries.list_devices(self._db, where, limit=filters.effective_limit)
        return [Device.model_validate(row) for row in rows]

    async def device_entries(
        self,
        filters: FilterOptions | None = None,
        manufacturer_id: int | None = None,
    ) -> list[DeviceEntry]:
        """Devices together with their detections inside the filter window.

        ``filters.limit`` caps the number of devices and, independently, the
        detections fetched per device.
        """
        filters = filters or FilterOptions()
        entries: list[DeviceEntry] = []
        for device in await self.devices(filters, manufacturer_id):
            where = detection_filter(device.address, filters)
            async with _storage_errors("device_entries"):
                rows = await queries.list_detections(
                    self._db, where, limit=filters.effective_limit
                )
            entries.append(
                DeviceEntry(
                    device=device,
                    detections=[Detection.model_validate(row) for row in rows],
                )
            )
        return entries

    async def find_near(self, latitude: float, longitude: float, radius_km: float) -> set[str]:
        """Addresses with at least one detection within *radius_km* of the point."""
        if not math.isfinite(radius_km) or radius_km < 0:
            raise ValueError(f"radius_km must be a finite, non-negative number, got {radius_km}")

        box = bounding_box(latitude, longitude, radius_km)
        async with _storage_errors("find_near"):
            candidates = await queries.detections_in_box(self._db, box)

        found = {
            address
            for address, lat, lon in candidates
            if haversine_distance(latitude, longitude, lat, lon) <= radius_km
        }
        logger.debug(
            "find_near(%s, %s, %s km): %d candidates, %d devices",
            latitude, longitude, radius_km, len(candidates), len(found),
        )
        return found

    async def counts(self) -> tuple[int, int]:
        """Return ``(devices, detections)`` row counts."""
        async with _storage_errors("counts"):
            devices = await queries.count_rows(self._db, "devices")
            detections = await queries.count_rows(self._db, "detections")
        return devices, detections
