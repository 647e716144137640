"""Manufacturer identifier resolution and company-name lookup.

Scanners report manufacturer-specific advertisement data as a map of
16-bit company identifier to payload bytes. The store keeps that map in
its textual rendering (``{76: [2, 21, 0]}``), and this module recovers the
company identifier from the text. The name table is a two-column CSV
(``id,name``) generated from the Bluetooth SIG company identifier
registry by ``scripts/update_company_ids.py``.
"""

from __future__ import annotations

import csv
import logging
import pathlib
import re
from collections.abc import Mapping

from bluetracker.exceptions import ConfigError

logger = logging.getLogger(__name__)

# Seed subset of the SIG registry; scripts/update_company_ids.py writes the full list
DEFAULT_TABLE_PATH = pathlib.Path(__file__).resolve().parent / "data" / "manufacturer_names.csv"

_MAX_COMPANY_ID = 0xFFFF

# "{<id>: [<bytes>]}" -- first key of the rendered map
_PAYLOAD_RE = re.compile(r"\{(\d+): \[(.*?)\]\}")


# ---------------------------------------------------------------------------
# Identifier extraction
# ---------------------------------------------------------------------------


def resolve_manufacturer_id(raw: str | None) -> int | None:
    """Extract the company identifier from a rendered manufacturer-data map.

    Returns ``None`` when the payload is empty, does not match the
    ``{<id>: [<bytes>]}`` shape, or the id does not fit in 16 bits.
    """
    if not raw:
        return None
    match = _PAYLOAD_RE.search(raw)
    if match is None:
        return None
    company_id = int(match.group(1))
    if company_id > _MAX_COMPANY_ID:
        return None
    return company_id


def company_id_from_bytes(data: bytes) -> int | None:
    """Return the company identifier carried in raw manufacturer-specific data.

    The identifier is the first two bytes, little-endian.
    """
    if len(data) < 2:
        return None
    return int.from_bytes(data[:2], "little")


def format_manufacturer_data(data: Mapping[int, bytes | bytearray | list[int]]) -> str:
    """Render a scanner's ``{company_id: payload}`` map to the stored text form."""
    if not data:
        return ""
    parts = []
    for company_id, payload in data.items():
        values = ", ".join(str(b) for b in bytes(payload))
        parts.append(f"{company_id}: [{values}]")
    return "{" + ", ".join(parts) + "}"


def format_company_id(company_id: int) -> str:
    """Format a company identifier as the table key, e.g. ``0x004C``."""
    return f"0x{company_id:04X}"


def _normalize_table_id(raw_id: str) -> str:
    """Normalize a hex (``0x004c``) or decimal (``76``) id to ``0xXXXX``."""
    text = raw_id.strip()
    value = int(text, 16) if text.lower().startswith("0x") else int(text)
    if not 0 <= value <= _MAX_COMPANY_ID:
        raise ValueError(f"company id out of range: {raw_id!r}")
    return format_company_id(value)


# ---------------------------------------------------------------------------
# Name table
# ---------------------------------------------------------------------------


class ManufacturerTable:
    """Static ``0xXXXX -> company name`` lookup table."""

    def __init__(self, names: Mapping[str, str]) -> None:
        self._names = dict(names)

    def __len__(self) -> int:
        return len(self._names)

    @classmethod
    def load(cls, path: pathlib.Path | str) -> ManufacturerTable:
        """Load the table from a CSV file with a header row.

        Raises
        ------
        ConfigError
            If the file is missing or unreadable, or any row lacks an id or
            name or carries an id that is not a 16-bit hex/decimal number.
        """
        path = pathlib.Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(
                f"Manufacturer table not readable: {path} ({exc})", path=str(path)
            ) from exc

        reader = csv.reader(text.splitlines())
        if next(reader, None) is None:
            raise ConfigError(f"Manufacturer table is empty: {path}", path=str(path))

        names: dict[str, str] = {}
        for line_no, row in enumerate(reader, start=2):
            if not row or not any(cell.strip() for cell in row):
                continue
            if len(row) < 2 or not row[1].strip():
                raise ConfigError(
                    f"{path}:{line_no}: expected 'id,name', got {row!r}", path=str(path)
                )
            try:
                key = _normalize_table_id(row[0])
            except ValueError as exc:
                raise ConfigError(f"{path}:{line_no}: {exc}", path=str(path)) from exc
            names[key] = row[1].strip()

        logger.debug("Loaded %d manufacturer names from %s", len(names), path)
        return cls(names)

    @classmethod
    def default(cls) -> ManufacturerTable:
        """Load the table packaged with bluetracker."""
        return cls.load(DEFAULT_TABLE_PATH)

    def name_for(self, company_id: int) -> str | None:
        """Return the company name for *company_id*, or ``None`` if unknown."""
        return self._names.get(format_company_id(company_id))


def resolve_manufacturer_name(company_id: int, table: ManufacturerTable) -> str | None:
    """Look up a company name; absent entries are not errors."""
    return table.name_for(company_id)
