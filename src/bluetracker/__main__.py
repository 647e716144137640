"""bluetracker -- command line entry point.

Usage::

    python -m bluetracker [--config PATH] [--db PATH] COMMAND ...

Commands:
    ingest FILE       store a JSON list of scan observations as one batch
    location ADDRESS  last known coordinates of a device
    nearby LAT LON R  devices detected within R km of a point
    history ADDRESS   detection history of a device, newest first
    devices           list stored devices
    brand ID          manufacturer name for a company identifier
    stats             visit statistics over stored devices
    migrate           apply pending schema migrations
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from bluetracker.exceptions import BluetrackerError, ConfigError

logger = logging.getLogger("bluetracker")


# ---------------------------------------------------------------------------
# Integration seams -- thin wrappers so tests can patch them individually.
# ---------------------------------------------------------------------------


def load_config(config_path: str | None) -> Any:
    """Load settings from a YAML file or the built-in defaults."""
    from bluetracker.config import load_settings

    path = Path(config_path) if config_path else None
    return load_settings(config_path=path)


async def open_store(db_path: Path | str, hash_addresses: bool) -> Any:
    """Open the detection store, applying migrations."""
    from bluetracker.store import DetectionStore

    return await DetectionStore.open(db_path, hash_addresses=hash_addresses)


def load_manufacturer_table(table_path: str | None) -> Any:
    """Load the manufacturer table from *table_path* or the packaged copy."""
    from bluetracker.manufacturers import ManufacturerTable

    if table_path:
        return ManufacturerTable.load(table_path)
    return ManufacturerTable.default()


def read_observations(path: Path) -> list[Any]:
    """Parse a JSON file holding a list of scan observations."""
    from bluetracker.models import ScanObservation

    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read observations from {path}: {exc}", path=str(path)) from exc
    if not isinstance(data, list):
        raise ConfigError(f"{path} must contain a JSON list of observations", path=str(path))
    try:
        return [ScanObservation.model_validate(item) for item in data]
    except ValidationError as exc:
        raise ConfigError(f"Invalid observation in {path}: {exc}", path=str(path)) from exc


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def _rfc3339(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an RFC 3339 timestamp: {value!r}") from exc
    # A date alone, or a time without an offset, parses but names no instant
    if parsed.tzinfo is None:
        raise argparse.ArgumentTypeError(
            f"RFC 3339 timestamp needs a time and an offset: {value!r}"
        )
    return parsed


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def _add_window_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-s", "--start-time", type=_rfc3339, default=None,
                        help="Inclusive lower bound (RFC 3339)")
    parser.add_argument("-e", "--end-time", type=_rfc3339, default=None,
                        help="Inclusive upper bound (RFC 3339)")
    parser.add_argument("-l", "--limit", type=_non_negative_int, default=None,
                        help="Maximum rows returned (default: 50)")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Parameters
    ----------
    argv:
        Argument list.  Defaults to ``sys.argv[1:]`` when ``None``.
    """
    parser = argparse.ArgumentParser(
        prog="bluetracker",
        description="Track Bluetooth devices and where they were seen",
    )
    parser.add_argument("--config", type=str, default=None,
                        help="Path to YAML configuration file")
    parser.add_argument("--db", type=str, default=None,
                        help="Database path (overrides store.db_path)")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Store a JSON file of scan observations")
    ingest.add_argument("file", type=Path)
    ingest.add_argument("--latitude", type=float, default=None,
                        help="Observer latitude for observations without one")
    ingest.add_argument("--longitude", type=float, default=None,
                        help="Observer longitude for observations without one")
    ingest.add_argument("-o", "--output", type=str, default=None,
                        help="Also save the observations to a timestamped JSON file; "
                             "relative paths are placed under scan.output_dir")

    location = sub.add_parser("location", help="Last known location of a device")
    location.add_argument("address")

    nearby = sub.add_parser("nearby", help="Devices seen within a radius")
    nearby.add_argument("latitude", type=float)
    nearby.add_argument("longitude", type=float)
    nearby.add_argument("radius", type=float, help="Radius in kilometres")

    history = sub.add_parser("history", help="Detection history of a device")
    history.add_argument("address")
    _add_window_arguments(history)

    devices = sub.add_parser("devices", help="List stored devices")
    _add_window_arguments(devices)
    devices.add_argument("-m", "--manufacturer-id", type=int, default=None)

    brand = sub.add_parser("brand", help="Manufacturer name for a company id")
    brand.add_argument("id", type=int)

    stats = sub.add_parser("stats", help="Visit statistics")
    _add_window_arguments(stats)

    sub.add_parser("migrate", help="Apply pending schema migrations")

    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _filters(args: argparse.Namespace) -> Any:
    from bluetracker.models import FilterOptions

    return FilterOptions(start_time=args.start_time, end_time=args.end_time, limit=args.limit)


async def _cmd_ingest(args: argparse.Namespace, settings: Any, store: Any) -> None:
    from bluetracker.export import save_observations
    from bluetracker.ingestion import IngestionPipeline, fill_location

    latitude = args.latitude if args.latitude is not None else settings.scan.latitude
    longitude = args.longitude if args.longitude is not None else settings.scan.longitude
    observations = fill_location(read_observations(args.file), latitude, longitude)

    report = await IngestionPipeline(store).ingest(observations)
    print(
        f"Stored {report.detections_written} detections "
        f"({report.devices_created} new devices)."
    )
    if args.output:
        output = Path(args.output).expanduser()
        if not output.is_absolute():
            output = Path(settings.scan.output_dir).expanduser() / output
        path = save_observations(output, observations)
        print(f"Observations saved to {path}")


async def _cmd_location(args: argparse.Namespace, settings: Any, store: Any) -> None:
    location = await store.last_known_location(args.address)
    if location is None:
        print("No location data found for device.")
    else:
        print(f"Last known location: ({location[0]}, {location[1]})")


async def _cmd_nearby(args: argparse.Namespace, settings: Any, store: Any) -> None:
    found = await store.find_near(args.latitude, args.longitude, args.radius)
    if not found:
        print(f"No devices found within {args.radius} km.")
        return
    print(f"Devices found within {args.radius} km:")
    for address in sorted(found):
        print(f"- {address}")


async def _cmd_history(args: argparse.Namespace, settings: Any, store: Any) -> None:
    history = await store.history(args.address, _filters(args))
    if not history:
        print("No history found for device.")
        return
    print(f"Detection history for {args.address}:")
    for d in history:
        print(
            f"- Time: {d.timestamp.isoformat()}, Location: ({d.latitude}, {d.longitude}), "
            f"RSSI: {d.rssi}, Tx Power: {d.tx_power}, Manufacturer Data: {d.manufacturer_data}"
        )


async def _cmd_devices(args: argparse.Namespace, settings: Any, store: Any) -> None:
    devices = await store.devices(_filters(args), args.manufacturer_id)
    if not devices:
        print("No devices found.")
        return
    print(f"Stored devices ({len(devices)}):")
    for device in devices:
        manufacturer = "-" if device.manufacturer_id is None else device.manufacturer_id
        print(f"- Address: {device.address}, Name: {device.name}, Manufacturer: {manufacturer}")


async def _cmd_stats(args: argparse.Namespace, settings: Any, store: Any) -> None:
    from bluetracker import analytics

    entries = await store.device_entries(_filters(args))
    gap = settings.analytics.visit_gap
    unique, returning = analytics.count_unique_and_returning(entries, gap)
    peak = analytics.peak_visit_hour(entries)
    stay = analytics.average_stay_duration(entries)
    print(f"Unique devices: {unique}")
    print(f"Returning devices: {returning}")
    print(f"Peak hour (UTC): {'-' if peak is None else f'{peak:02d}:00'}")
    print(f"Average stay: {'-' if stay is None else stay}")


async def _cmd_migrate(args: argparse.Namespace, settings: Any, store: Any) -> None:
    devices, detections = await store.counts()
    print(f"Schema up to date ({devices} devices, {detections} detections).")


_STORE_COMMANDS = {
    "ingest": _cmd_ingest,
    "location": _cmd_location,
    "nearby": _cmd_nearby,
    "history": _cmd_history,
    "devices": _cmd_devices,
    "stats": _cmd_stats,
    "migrate": _cmd_migrate,
}


async def run_command(args: argparse.Namespace, settings: Any | None = None) -> None:
    """Execute one parsed command against a freshly opened store."""
    if settings is None:
        settings = load_config(args.config)

    if args.command == "brand":
        from bluetracker.manufacturers import resolve_manufacturer_name

        table = load_manufacturer_table(settings.manufacturers.table_path)
        name = resolve_manufacturer_name(args.id, table)
        print(f"Manufacturer Name: {name}" if name else "Manufacturer Name not found.")
        return

    db_path = args.db or settings.store.resolved_db_path
    store = await open_store(db_path, settings.store.hash_addresses)
    try:
        await _STORE_COMMANDS[args.command](args, settings, store)
    finally:
        await store.close()


# ---------------------------------------------------------------------------
# Script entry point
# ---------------------------------------------------------------------------


def main(argv: Sequence[str] | None = None) -> None:
    """Parse CLI args and run the command."""
    args = parse_args(list(argv) if argv is not None else None)

    try:
        settings = load_config(args.config)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=settings.logging.level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        asyncio.run(run_command(args, settings))
    except (BluetrackerError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()
