#!/usr/bin/env python3
"""Generate the manufacturer name table from the Bluetooth SIG registry.

Downloads the official company identifier list (YAML), normalizes ids to
``0xXXXX`` and writes the two-column CSV that ``ManufacturerTable`` loads.

Usage:
    python scripts/update_company_ids.py

Output:
    src/bluetracker/data/manufacturer_names.csv
"""

from __future__ import annotations

import csv
import io
from pathlib import Path

import yaml

SIG_SOURCE_URL = (
    "https://bitbucket.org/bluetooth-SIG/public/raw/main/"
    "assigned_numbers/company_identifiers/company_identifiers.yaml"
)

_MAX_COMPANY_ID = 0xFFFF


# ---------------------------------------------------------------------------
# YAML parsing
# ---------------------------------------------------------------------------


def _parse_value(raw: object) -> int | None:
    """Return a company id from a YAML ``value`` field, or None if unusable.

    PyYAML already turns ``0x004C`` into an int; quoted values arrive as str.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip()
        try:
            value = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            return None
    else:
        return None
    if not 0 <= value <= _MAX_COMPANY_ID:
        return None
    return value


def parse_company_identifiers(yaml_text: str) -> dict[int, str]:
    """Parse the SIG ``company_identifiers.yaml`` into an id -> name dict.

    Entries without a usable value or name are skipped.

    Parameters
    ----------
    yaml_text:
        Raw YAML text with a top-level ``company_identifiers`` list of
        ``{value, name}`` mappings.
    """
    data = yaml.safe_load(yaml_text) or {}
    entries = data.get("company_identifiers", []) if isinstance(data, dict) else []

    result: dict[int, str] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        value = _parse_value(entry.get("value"))
        name = str(entry.get("name") or "").strip()
        if value is None or not name:
            continue
        # Collapse internal whitespace runs left by line-wrapped names
        result[value] = " ".join(name.split())
    return result


# ---------------------------------------------------------------------------
# CSV generation
# ---------------------------------------------------------------------------


def render_manufacturer_csv(companies: dict[int, str]) -> str:
    """Render the id -> name mapping as CSV text sorted by id."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["id", "name"])
    for company_id in sorted(companies):
        writer.writerow([f"0x{company_id:04X}", companies[company_id]])
    return buffer.getvalue()


def write_manufacturer_csv(companies: dict[int, str], output_path: Path) -> None:
    """Write the manufacturer table CSV, creating parent directories."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_manufacturer_csv(companies), encoding="utf-8")


# ---------------------------------------------------------------------------
# Main entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Download the SIG registry and regenerate the manufacturer table."""
    import httpx

    output_path = (
        Path(__file__).resolve().parents[1]
        / "src"
        / "bluetracker"
        / "data"
        / "manufacturer_names.csv"
    )

    print(f"Downloading company identifiers from {SIG_SOURCE_URL} ...")
    response = httpx.get(SIG_SOURCE_URL, timeout=60.0, follow_redirects=True)
    response.raise_for_status()

    print("Parsing YAML ...")
    companies = parse_company_identifiers(response.text)
    print(f"Parsed {len(companies):,} company identifiers")

    print(f"Writing table to {output_path} ...")
    write_manufacturer_csv(companies, output_path)
    print("Done.")


if __name__ == "__main__":
    main()
