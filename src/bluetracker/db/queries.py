"""Typed async query helpers for the devices and detections tables.

Every function takes an ``aiosqlite.Connection`` as its first argument and
returns plain dicts or scalar values. Write helpers never commit: the
caller owns the transaction so a batch of observations lands atomically.
"""

from __future__ import annotations

from typing import Any

import aiosqlite

from bluetracker.db.filters import QueryFilter
from bluetracker.geo import BoundingBox

_DETECTION_COLUMNS = (
    "id, device_address, timestamp, latitude, longitude, rssi, tx_power, manufacturer_data"
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

async def _fetchone(
    db: aiosqlite.Connection, sql: str, params: tuple = ()
) -> dict[str, Any] | None:
    cursor = await db.execute(sql, params)
    row = await cursor.fetchone()
    if row is None:
        return None
    columns = [desc[0] for desc in cursor.description]
    return dict(zip(columns, row))


async def _fetchall(
    db: aiosqlite.Connection, sql: str, params: tuple = ()
) -> list[dict[str, Any]]:
    cursor = await db.execute(sql, params)
    rows = await cursor.fetchall()
    if not rows:
        return []
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in rows]


# ---------------------------------------------------------------------------
# Device queries
# ---------------------------------------------------------------------------

async def get_device(
    db: aiosqlite.Connection, address: str
) -> dict[str, Any] | None:
    """Get a single device by address."""
    return await _fetchone(
        db,
        "SELECT address, name, manufacturer_id FROM devices WHERE address = ?",
        (address,),
    )


async def insert_device(
    db: aiosqlite.Connection,
    *,
    address: str,
    name: str,
    manufacturer_id: int | None = None,
) -> None:
    """Insert a device row. Fails on a duplicate address."""
    await db.execute(
        "INSERT INTO devices (address, name, manufacturer_id) VALUES (?, ?, ?)",
        (address, name, manufacturer_id),
    )


async def set_device_manufacturer(
    db: aiosqlite.Connection, address: str, manufacturer_id: int
) -> None:
    """Record the manufacturer id resolved from a device's latest payload."""
    await db.execute(
        "UPDATE devices SET manufacturer_id = ? WHERE address = ?",
        (manufacturer_id, address),
    )


async def rekey_device(
    db: aiosqlite.Connection, old_address: str, new_address: str
) -> None:
    """Move a device row and its detections to a new address key.

    The new device row is created first so foreign keys hold throughout.
    """
    await db.execute(
        "INSERT INTO devices (address, name, manufacturer_id) "
        "SELECT ?, name, manufacturer_id FROM devices WHERE address = ?",
        (new_address, old_address),
    )
    await db.execute(
        "UPDATE detections SET device_address = ? WHERE device_address = ?",
        (new_address, old_address),
    )
    await db.execute("DELETE FROM devices WHERE address = ?", (old_address,))


async def list_devices(
    db: aiosqlite.Connection,
    where: QueryFilter,
    *,
    limit: int,
) -> list[dict[str, Any]]:
    """List devices matching *where* (alias ``d``), ordered by address."""
    clause, params = where.render()
    sql = f"SELECT d.address, d.name, d.manufacturer_id FROM devices d {clause} ORDER BY d.address LIMIT ?"
    return await _fetchall(db, sql, (*params, limit))


# ---------------------------------------------------------------------------
# Detection queries
# ---------------------------------------------------------------------------

async def insert_detection(
    db: aiosqlite.Connection,
    *,
    device_address: str,
    timestamp: str,
    latitude: float | None,
    longitude: float | None,
    rssi: int,
    tx_power: int,
    manufacturer_data: str,
) -> int:
    """Append a detection and return its row id."""
    cursor = await db.execute(
        """INSERT INTO detections
           (device_address, timestamp, latitude, longitude, rssi, tx_power, manufacturer_data)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (device_address, timestamp, latitude, longitude, rssi, tx_power, manufacturer_data),
    )
    assert cursor.lastrowid is not None
    return cursor.lastrowid


async def list_detections(
    db: aiosqlite.Connection,
    where: QueryFilter,
    *,
    limit: int,
) -> list[dict[str, Any]]:
    """List detections matching *where*, newest first, row id breaking ties."""
    clause, params = where.render()
    sql = (
        f"SELECT {_DETECTION_COLUMNS} FROM detections {clause} "
        "ORDER BY timestamp DESC, id DESC LIMIT ?"
    )
    return await _fetchall(db, sql, (*params, limit))


async def latest_location(
    db: aiosqlite.Connection, address: str
) -> tuple[float, float] | None:
    """Coordinates of the newest detection of *address* that has both."""
    row = await _fetchone(
        db,
        "SELECT latitude, longitude FROM detections "
        "WHERE device_address = ? AND latitude IS NOT NULL AND longitude IS NOT NULL "
        "ORDER BY timestamp DESC, id DESC LIMIT 1",
        (address,),
    )
    if row is None:
        return None
    return (row["latitude"], row["longitude"])


async def detections_in_box(
    db: aiosqlite.Connection, box: BoundingBox
) -> list[tuple[str, float, float]]:
    """Distinct ``(address, lat, lon)`` triples of detections inside *box*."""
    rows = await _fetchall(
        db,
        "SELECT DISTINCT device_address, latitude, longitude FROM detections "
        "WHERE latitude BETWEEN ? AND ? AND longitude BETWEEN ? AND ?",
        (box.min_lat, box.max_lat, box.min_lon, box.max_lon),
    )
    return [(r["device_address"], r["latitude"], r["longitude"]) for r in rows]


async def count_rows(db: aiosqlite.Connection, table: str) -> int:
    """Return the number of rows in *table* (devices or detections)."""
    if table not in ("devices", "detections"):
        raise ValueError(f"unknown table: {table!r}")
    cursor = await db.execute(f"SELECT COUNT(*) FROM {table}")
    row = await cursor.fetchone()
    return row[0] if row else 0
