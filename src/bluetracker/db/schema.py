"""SQLite schema definitions for the bluetracker detection store.

Two tables carry the data: ``devices`` (one row per address) and the
append-only ``detections`` log. ``schema_version`` records applied
migrations.
"""

from __future__ import annotations

# Current schema version -- increment when adding migrations
SCHEMA_VERSION = 4


# ---------------------------------------------------------------------------
# SQL statements for schema version 1
# ---------------------------------------------------------------------------

# IF NOT EXISTS lets files written by earlier, unversioned releases be adopted
# as-is; later migrations add what those files lack.
SCHEMA_V1_SQL = """
CREATE TABLE IF NOT EXISTS devices (
    address TEXT PRIMARY KEY,
    name TEXT
);

CREATE TABLE IF NOT EXISTS detections (
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

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""

SCHEMA_V3_SQL = """
CREATE INDEX IF NOT EXISTS idx_detections_device_time
    ON detections(device_address, timestamp);
CREATE INDEX IF NOT EXISTS idx_detections_coords
    ON detections(latitude, longitude);
"""
