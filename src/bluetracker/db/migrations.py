"""Schema version tracking and migration runner.

Checks the current schema version in the database and applies any pending
migrations in order. Version 0 means no schema_version table yet, which is
also the state of files written by releases that predate versioning.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import aiosqlite

from bluetracker.db.filters import format_timestamp
from bluetracker.db.schema import SCHEMA_V1_SQL, SCHEMA_V3_SQL, SCHEMA_VERSION
from bluetracker.manufacturers import resolve_manufacturer_id

logger = logging.getLogger(__name__)


async def _get_current_version(db: aiosqlite.Connection) -> int:
    """Return the current schema version, or 0 if the table does not exist."""
    if not await _table_exists(db, "schema_version"):
        return 0
    cursor = await db.execute("SELECT MAX(version) FROM schema_version")
    row = await cursor.fetchone()
    return row[0] if row and row[0] is not None else 0


async def _table_exists(db: aiosqlite.Connection, table: str) -> bool:
    """Check whether a table already exists in the database."""
    cursor = await db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table,),
    )
    return await cursor.fetchone() is not None


async def _column_exists(db: aiosqlite.Connection, table: str, column: str) -> bool:
    """Check whether a column already exists in a table."""
    cursor = await db.execute(f"PRAGMA table_info({table})")
    rows = await cursor.fetchall()
    return any(row[1] == column for row in rows)


async def _record_version(db: aiosqlite.Connection, version: int) -> None:
    now = datetime.now(timezone.utc).isoformat()
    await db.execute(
        "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
        (version, now),
    )
    await db.commit()


async def _apply_v1(db: aiosqlite.Connection) -> None:
    """Apply schema version 1: devices, detections, schema_version."""
    await db.executescript(SCHEMA_V1_SQL)
    await _record_version(db, 1)


async def _apply_v2(db: aiosqlite.Connection) -> None:
    """V2: add devices.manufacturer_id and backfill it from stored payloads.

    Each device takes the id resolved from its most recent detection.
    Devices whose latest payload does not resolve keep NULL.
    """
    if not await _column_exists(db, "devices", "manufacturer_id"):
        await db.execute("ALTER TABLE devices ADD COLUMN manufacturer_id INTEGER")

    cursor = await db.execute(
        "SELECT d.address, "
        "(SELECT manufacturer_data FROM detections "
        " WHERE device_address = d.address "
        " ORDER BY timestamp DESC, id DESC LIMIT 1) "
        "FROM devices d WHERE d.manufacturer_id IS NULL"
    )
    rows = await cursor.fetchall()

    backfilled = 0
    for address, payload in rows:
        manufacturer_id = resolve_manufacturer_id(payload)
        if manufacturer_id is None:
            continue
        await db.execute(
            "UPDATE devices SET manufacturer_id = ? WHERE address = ?",
            (manufacturer_id, address),
        )
        backfilled += 1

    if backfilled:
        logger.info("Backfilled manufacturer_id for %d devices", backfilled)
    await _record_version(db, 2)


async def _apply_v3(db: aiosqlite.Connection) -> None:
    """V3: index detections by device/time and by coordinates."""
    await db.executescript(SCHEMA_V3_SQL)
    await _record_version(db, 3)


async def _apply_v4(db: aiosqlite.Connection) -> None:
    """V4: rewrite detection timestamps into the fixed-precision UTC form.

    Files from unversioned releases hold variable-precision text (no
    fraction, or nanoseconds), which does not compare correctly against
    window bounds. Values that cannot be parsed are left untouched.
    """
    cursor = await db.execute("SELECT id, timestamp FROM detections")
    rows = await cursor.fetchall()

    rewritten = 0
    for row_id, raw in rows:
        if raw is None:
            continue
        try:
            canonical = format_timestamp(datetime.fromisoformat(raw))
        except ValueError:
            logger.warning("Unparseable timestamp %r on detection %d left as-is", raw, row_id)
            continue
        if canonical != raw:
            await db.execute(
                "UPDATE detections SET timestamp = ? WHERE id = ?", (canonical, row_id)
            )
            rewritten += 1

    if rewritten:
        logger.info("Normalized %d detection timestamps", rewritten)
    await _record_version(db, 4)


# Ordered list of migration functions. Index 0 = migration to version 1.
_MIGRATIONS: list[tuple[int, Callable[[aiosqlite.Connection], Awaitable[None]]]] = [
    (1, _apply_v1),
    (2, _apply_v2),
    (3, _apply_v3),
    (4, _apply_v4),
]


async def apply_migrations(db: aiosqlite.Connection) -> int:
    """Apply all pending migrations and return the resulting schema version.

    Safe to call multiple times -- skips already-applied migrations.
    """
    current = await _get_current_version(db)

    if current >= SCHEMA_VERSION:
        return current

    for target_version, migrate_fn in _MIGRATIONS:
        if current < target_version:
            await migrate_fn(db)
            logger.info("Applied schema migration v%d", target_version)
            current = target_version
    return current
