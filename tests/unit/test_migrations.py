"""Tests for schema migrations."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite
import pytest

from bluetracker.db.migrations import apply_migrations
from bluetracker.db.schema import SCHEMA_VERSION
from bluetracker.models import FilterOptions
from bluetracker.store import DetectionStore

# Layout written by releases that predate schema versioning
LEGACY_SCHEMA = """
CREATE TABLE devices (
    address TEXT PRIMARY KEY,
    name TEXT
);
CREATE TABLE detections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_address TEXT,
    timestamp TEXT,
    latitude REAL,
    longitude REAL,
    rssi INTEGER,
    tx_power INTEGER,
    manufacturer_data TEXT,
    FOREIGN KEY(device_address) REFERENCES devices(address)
);
"""


async def _index_names(db: aiosqlite.Connection) -> set[str]:
    cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='index'")
    return {row[0] for row in await cursor.fetchall()}


class TestFreshDatabase:
    @pytest.mark.asyncio
    async def test_creates_all_tables(self, tmp_path) -> None:
        db = await aiosqlite.connect(str(tmp_path / "test.db"))
        assert await apply_migrations(db) == SCHEMA_VERSION

        cursor = await db.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in await cursor.fetchall()}
        assert {"devices", "detections", "schema_version"} <= tables
        assert {"idx_detections_device_time", "idx_detections_coords"} <= await _index_names(db)
        await db.close()

    @pytest.mark.asyncio
    async def test_is_idempotent(self, tmp_path) -> None:
        db = await aiosqlite.connect(str(tmp_path / "test.db"))
        await apply_migrations(db)
        await apply_migrations(db)  # Should be a no-op

        cursor = await db.execute("SELECT COUNT(*), MAX(version) FROM schema_version")
        row = await cursor.fetchone()
        assert tuple(row) == (SCHEMA_VERSION, SCHEMA_VERSION)
        await db.close()


class TestLegacyDatabase:
    """Files from unversioned releases are adopted and backfilled."""

    @pytest.mark.asyncio
    async def test_backfills_manufacturer_id(self, tmp_path) -> None:
        db = await aiosqlite.connect(str(tmp_path / "legacy.db"))
        db.row_factory = aiosqlite.Row
        await db.executescript(LEGACY_SCHEMA)
        await db.executemany(
            "INSERT INTO devices (address, name) VALUES (?, ?)",
            [("AA", "Phone"), ("BB", None), ("CC", "Tag")],
        )
        await db.executemany(
            "INSERT INTO detections (device_address, timestamp, latitude, longitude, "
            "rssi, tx_power, manufacturer_data) VALUES (?, ?, NULL, NULL, -60, 0, ?)",
            [
                ("AA", "2026-01-01T00:00:00.000000+00:00", "{6: [1]}"),
                ("AA", "2026-01-02T00:00:00.000000+00:00", "{76: [2, 21]}"),
                ("BB", "2026-01-01T00:00:00.000000+00:00", "garbage"),
            ],
        )
        await db.commit()

        assert await apply_migrations(db) == SCHEMA_VERSION

        cursor = await db.execute("SELECT address, manufacturer_id FROM devices ORDER BY address")
        rows = {row["address"]: row["manufacturer_id"] for row in await cursor.fetchall()}
        assert rows == {"AA": 76, "BB": None, "CC": None}

        cursor = await db.execute("SELECT COUNT(*) FROM detections")
        assert (await cursor.fetchone())[0] == 3
        await db.close()

    @pytest.mark.asyncio
    async def test_reapplying_keeps_data(self, tmp_path) -> None:
        db = await aiosqlite.connect(str(tmp_path / "legacy.db"))
        await db.executescript(LEGACY_SCHEMA)
        await db.execute("INSERT INTO devices (address, name) VALUES ('AA', 'Phone')")
        await db.commit()

        await apply_migrations(db)
        await apply_migrations(db)

        cursor = await db.execute("SELECT COUNT(*) FROM devices")
        assert (await cursor.fetchone())[0] == 1
        await db.close()


class TestLegacyTimestamps:
    """Variable-precision timestamps from older files are normalized."""

    async def _legacy_file(self, path, stamps: list[str]) -> None:
        db = await aiosqlite.connect(str(path))
        await db.executescript(LEGACY_SCHEMA)
        await db.execute("INSERT INTO devices (address, name) VALUES ('AA', 'Phone')")
        await db.executemany(
            "INSERT INTO detections (device_address, timestamp, latitude, longitude, "
            "rssi, tx_power, manufacturer_data) VALUES ('AA', ?, NULL, NULL, -60, 0, '')",
            [(stamp,) for stamp in stamps],
        )
        await db.commit()
        await db.close()

    @pytest.mark.asyncio
    async def test_rewrites_to_fixed_precision(self, tmp_path) -> None:
        path = tmp_path / "legacy.db"
        await self._legacy_file(
            path,
            [
                "2024-03-01T08:00:00+00:00",
                "2024-03-01T09:00:00.123456789+00:00",
                "2024-03-01T10:30:00.5+02:00",
                "2024-03-01T11:00:00.000000+00:00",
                "not a timestamp",
            ],
        )
        db = await aiosqlite.connect(str(path))
        await apply_migrations(db)

        cursor = await db.execute("SELECT timestamp FROM detections ORDER BY id")
        stamps = [row[0] for row in await cursor.fetchall()]
        assert stamps == [
            "2024-03-01T08:00:00.000000+00:00",
            "2024-03-01T09:00:00.123456+00:00",
            "2024-03-01T08:30:00.500000+00:00",
            "2024-03-01T11:00:00.000000+00:00",
            "not a timestamp",
        ]
        await db.close()

    @pytest.mark.asyncio
    async def test_window_bounds_are_inclusive(self, tmp_path) -> None:
        path = tmp_path / "legacy.db"
        await self._legacy_file(
            path,
            ["2024-03-01T08:00:00+00:00", "2024-03-01T09:00:00.123456789+00:00"],
        )
        whole_second = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
        fractional = datetime(2024, 3, 1, 9, 0, 0, 123456, tzinfo=timezone.utc)

        async with await DetectionStore.open(path) as store:
            window = FilterOptions(start_time=whole_second, end_time=whole_second)
            exact = await store.history("AA", window)
            assert [d.timestamp for d in exact] == [whole_second]

            upto = await store.history("AA", FilterOptions(end_time=fractional))
            assert [d.timestamp for d in upto] == [fractional, whole_second]

            since = await store.history("AA", FilterOptions(start_time=fractional))
            assert [d.timestamp for d in since] == [fractional]
